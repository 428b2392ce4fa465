from __future__ import annotations

from dataclasses import dataclass
import re

import structlog

from sobi.services.fragments.catalog import DEFAULT_CATALOG, FragmentTypeCatalog
from sobi.services.fragments.normalizer import (
    escape_reserved,
    normalize_bill_line,
    repair,
    wrap_document,
)
from sobi.services.fragments.types import Fragment, FragmentType, SourceDocument

logger = structlog.get_logger(__name__)

BILL_SEQUENCE_NO = 0

_LINE_BREAK = re.compile(r"\r?\n")


@dataclass
class LineCursor:
    lines: list[str]
    position: int = 0

    def has_next(self) -> bool:
        return self.position < len(self.lines)

    def next(self) -> str:
        line = self.lines[self.position]
        self.position += 1
        return line


def split_lines(text: str) -> list[str]:
    lines = _LINE_BREAK.split(text)
    while lines and not lines[-1]:
        lines.pop()
    return lines


def _consume_record(
    cursor: LineCursor,
    fragment_type: FragmentType,
    *,
    catalog: FragmentTypeCatalog,
) -> tuple[list[str], bool]:
    """Reads lines up to and including the end line of ``fragment_type``.

    Returns the lines read and whether the end line was found.
    """
    consumed: list[str] = []
    while cursor.has_next():
        line = cursor.next()
        consumed.append(escape_reserved(line))
        if catalog.is_end(fragment_type, line):
            return consumed, True
    return consumed, False


def extract_fragments(
    document: SourceDocument,
    *,
    catalog: FragmentTypeCatalog = DEFAULT_CATALOG,
) -> list[Fragment]:
    """Splits a SOBI file into typed fragments.

    All BILL lines are merged into one fragment with sequence number 0 so it is
    processed before anything else in the file. Other fragments are numbered
    from 1 in the order their start lines appear. Lines that start no known
    record are dropped.
    """
    fragments: list[Fragment] = []
    bill_lines: list[str] = []
    sequence_no = 1

    cursor = LineCursor(split_lines(document.text))
    while cursor.has_next():
        line = cursor.next()
        fragment_type = catalog.classify(line)
        if fragment_type is None:
            continue

        if fragment_type.is_primary:
            bill_lines.append(normalize_bill_line(line, encoding=document.encoding))
            continue

        start_position = cursor.position
        body, terminated = _consume_record(cursor, fragment_type, catalog=catalog)
        if not terminated:
            logger.error(
                "unterminated_fragment",
                file_name=document.file_name,
                fragment_type=fragment_type.name,
                start_line_no=start_position,
                start_line=line,
            )

        fragments.append(
            Fragment(
                file_name=document.file_name,
                published_date_time=document.published_date_time,
                fragment_type=fragment_type,
                sequence_no=sequence_no,
                text=repair(wrap_document(line, body)),
            )
        )
        sequence_no += 1

    if bill_lines:
        fragments.append(
            Fragment(
                file_name=document.file_name,
                published_date_time=document.published_date_time,
                fragment_type=FragmentType.BILL,
                sequence_no=BILL_SEQUENCE_NO,
                text="".join(f"{line}\n" for line in bill_lines),
            )
        )

    return fragments
