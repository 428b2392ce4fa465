from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
import re
import shutil
from typing import Protocol, Sequence

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from sobi.db import utcnow
from sobi.models import SobiFileRecord, SobiFragmentRecord
from sobi.services.fragments.types import Fragment, FragmentType, SourceDocument

logger = structlog.get_logger(__name__)

_SOBI_FILE_NAME = re.compile(r"SOBI\.D(\d{6})\.T(\d{6})\.TXT", re.IGNORECASE)


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class FragmentNotFoundError(LookupError):
    def __init__(self, fragment_id: str) -> None:
        super().__init__(f"sobi fragment not found: {fragment_id}")
        self.fragment_id = fragment_id


class FragmentStore(Protocol):
    def fetch_incoming_documents(self, order: SortOrder, limit: int) -> Sequence[SourceDocument]:
        ...

    def save_document(self, document: SourceDocument, *, fragment_count: int | None = None) -> None:
        ...

    def archive_document(self, document: SourceDocument) -> None:
        ...

    def save_fragment(self, fragment: Fragment) -> None:
        ...

    def fetch_pending_fragments(
        self,
        order: SortOrder,
        limit: int,
        *,
        after: Fragment | None = None,
    ) -> Sequence[Fragment]:
        ...

    def fetch_fragment(self, fragment_id: str) -> Fragment:
        ...


def parse_published_date_time(file_name: str) -> datetime | None:
    match = _SOBI_FILE_NAME.fullmatch(file_name)
    if match is None:
        return None
    try:
        return datetime.strptime(match.group(1) + match.group(2), "%y%m%d%H%M%S")
    except ValueError:
        return None


def _to_fragment(record: SobiFragmentRecord) -> Fragment:
    return Fragment(
        file_name=record.file_name,
        published_date_time=record.published_date_time,
        fragment_type=FragmentType[record.fragment_type],
        sequence_no=record.sequence_no,
        text=record.text,
        pending_processing=record.pending_processing,
        processed_count=record.processed_count,
        processed_date_time=record.processed_date_time,
    )


class SqlFragmentStore:
    """SOBI files staged on disk, fragments and file metadata in the database.

    Incoming files live directly under ``incoming_dir``. Archiving moves a file
    to ``archive_dir/<year>/`` and flags its ``sobi_files`` row.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        incoming_dir: Path,
        archive_dir: Path,
        encoding: str,
    ) -> None:
        self._engine = engine
        self._incoming_dir = incoming_dir
        self._archive_dir = archive_dir
        self._encoding = encoding

    # --- SOBI files ---

    def _published_date_time(self, path: Path) -> datetime:
        published = parse_published_date_time(path.name)
        if published is None:
            published = datetime.fromtimestamp(path.stat().st_mtime)
            logger.warning("unparsed_sobi_file_name", file_name=path.name, fallback=published.isoformat())
        return published

    def fetch_incoming_documents(self, order: SortOrder, limit: int) -> list[SourceDocument]:
        if not self._incoming_dir.is_dir():
            raise NotADirectoryError(f"Incoming directory not found: {self._incoming_dir}")

        staged = [
            (self._published_date_time(path), path)
            for path in self._incoming_dir.iterdir()
            if path.is_file()
        ]
        staged.sort(key=lambda item: (item[0], item[1].name), reverse=order is SortOrder.DESC)

        documents: list[SourceDocument] = []
        for published, path in staged[: max(0, limit)]:
            raw = path.read_bytes()
            documents.append(
                SourceDocument(
                    file_name=path.name,
                    published_date_time=published,
                    encoding=self._encoding,
                    text=raw.decode(self._encoding, errors="replace"),
                )
            )
        return documents

    def save_document(self, document: SourceDocument, *, fragment_count: int | None = None) -> None:
        with Session(self._engine) as session:
            record = session.get(SobiFileRecord, document.file_name)
            if record is None:
                record = SobiFileRecord(
                    file_name=document.file_name,
                    staged_date_time=document.staged_date_time or utcnow(),
                    archived=False,
                )
                session.add(record)
            record.published_date_time = document.published_date_time
            record.encoding = document.encoding
            if fragment_count is not None:
                record.fragment_count = fragment_count
            session.commit()

    def archive_document(self, document: SourceDocument) -> None:
        source = self._incoming_dir / document.file_name
        target_dir = self._archive_dir / str(document.published_date_time.year)
        target_dir.mkdir(parents=True, exist_ok=True)
        if source.exists():
            shutil.move(str(source), str(target_dir / document.file_name))

        with Session(self._engine) as session:
            record = session.get(SobiFileRecord, document.file_name)
            if record is None:
                raise LookupError(f"sobi file was never saved: {document.file_name}")
            record.archived = True
            record.archived_date_time = utcnow()
            session.commit()

    def find_incomplete_archives(self) -> list[tuple[str, int, int]]:
        """Archived files with fewer stored fragments than were extracted.

        Returns ``(file_name, expected, stored)`` tuples.
        """
        stored = (
            select(
                SobiFragmentRecord.file_name,
                func.count(SobiFragmentRecord.fragment_id).label("stored"),
            )
            .group_by(SobiFragmentRecord.file_name)
            .subquery()
        )
        stored_count = func.coalesce(stored.c.stored, 0)
        stmt = (
            select(SobiFileRecord.file_name, SobiFileRecord.fragment_count, stored_count)
            .outerjoin(stored, stored.c.file_name == SobiFileRecord.file_name)
            .where(SobiFileRecord.archived.is_(True))
            .where(SobiFileRecord.fragment_count.is_not(None))
            .where(stored_count < SobiFileRecord.fragment_count)
            .order_by(SobiFileRecord.published_date_time.asc(), SobiFileRecord.file_name.asc())
        )
        with Session(self._engine) as session:
            rows = session.execute(stmt).all()
        return [(file_name, int(expected), int(count)) for file_name, expected, count in rows]

    # --- Fragments ---

    def save_fragment(self, fragment: Fragment) -> None:
        with Session(self._engine) as session:
            record = session.get(SobiFragmentRecord, fragment.fragment_id)
            if record is None:
                record = SobiFragmentRecord(fragment_id=fragment.fragment_id)
                session.add(record)
            record.file_name = fragment.file_name
            record.published_date_time = fragment.published_date_time
            record.fragment_type = fragment.fragment_type.name
            record.sequence_no = fragment.sequence_no
            record.text = fragment.text
            record.pending_processing = fragment.pending_processing
            record.processed_count = fragment.processed_count
            record.processed_date_time = fragment.processed_date_time
            session.commit()

    def fetch_pending_fragments(
        self,
        order: SortOrder,
        limit: int,
        *,
        after: Fragment | None = None,
    ) -> list[Fragment]:
        # Files follow ``order``; fragments within a file always run by
        # ascending sequence number so the BILL fragment comes first.
        published = SobiFragmentRecord.published_date_time
        file_name = SobiFragmentRecord.file_name
        sequence_no = SobiFragmentRecord.sequence_no

        stmt = select(SobiFragmentRecord).where(SobiFragmentRecord.pending_processing.is_(True))
        if after is not None:
            if order is SortOrder.DESC:
                later_file = or_(
                    published < after.published_date_time,
                    and_(published == after.published_date_time, file_name < after.file_name),
                )
            else:
                later_file = or_(
                    published > after.published_date_time,
                    and_(published == after.published_date_time, file_name > after.file_name),
                )
            stmt = stmt.where(
                or_(
                    later_file,
                    and_(
                        published == after.published_date_time,
                        file_name == after.file_name,
                        sequence_no > after.sequence_no,
                    ),
                )
            )

        if order is SortOrder.DESC:
            stmt = stmt.order_by(published.desc(), file_name.desc(), sequence_no.asc())
        else:
            stmt = stmt.order_by(published.asc(), file_name.asc(), sequence_no.asc())

        with Session(self._engine) as session:
            records = session.scalars(stmt.limit(limit)).all()
            return [_to_fragment(record) for record in records]

    def fetch_fragment(self, fragment_id: str) -> Fragment:
        with Session(self._engine) as session:
            record = session.get(SobiFragmentRecord, fragment_id)
            if record is None:
                raise FragmentNotFoundError(fragment_id)
            return _to_fragment(record)
