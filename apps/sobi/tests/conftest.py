from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from sobi.config import get_settings
from sobi.db import Base, get_engine
from sobi.services.fragments import Fragment, SourceDocument, SqlFragmentStore

SOBI_FILE_NAME = "SOBI.D130323.T065432.TXT"


@pytest.fixture(autouse=True)
def reset_sobi_caches() -> Iterator[None]:
    get_settings.cache_clear()
    get_engine.cache_clear()
    yield
    get_settings.cache_clear()
    get_engine.cache_clear()


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'sobi-tests.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def incoming_dir(tmp_path: Path) -> Path:
    path = tmp_path / "incoming"
    path.mkdir()
    return path


@pytest.fixture
def archive_dir(tmp_path: Path) -> Path:
    return tmp_path / "archive"


@pytest.fixture
def store(engine: Engine, incoming_dir: Path, archive_dir: Path) -> SqlFragmentStore:
    return SqlFragmentStore(
        engine,
        incoming_dir=incoming_dir,
        archive_dir=archive_dir,
        encoding="CP1252",
    )


@pytest.fixture
def make_document() -> Callable[..., SourceDocument]:
    def _make(text: str, file_name: str = SOBI_FILE_NAME) -> SourceDocument:
        return SourceDocument(
            file_name=file_name,
            published_date_time=datetime(2013, 3, 23, 6, 54, 32),
            encoding="CP1252",
            text=text,
        )

    return _make


@pytest.fixture
def stage_file(incoming_dir: Path) -> Callable[[str, str], Path]:
    def _stage(file_name: str, text: str) -> Path:
        path = incoming_dir / file_name
        path.write_bytes(text.encode("cp1252"))
        return path

    return _stage


@pytest.fixture
def seed_fragment(store: SqlFragmentStore) -> Callable[..., Fragment]:
    def _seed(
        fragment_type,
        sequence_no: int,
        *,
        file_name: str = SOBI_FILE_NAME,
        published: datetime = datetime(2013, 3, 23, 6, 54, 32),
        pending: bool = True,
        text: str = "<SENATEDATA/>",
    ) -> Fragment:
        store.save_document(
            SourceDocument(
                file_name=file_name,
                published_date_time=published,
                encoding="CP1252",
                text="",
            )
        )
        fragment = Fragment(
            file_name=file_name,
            published_date_time=published,
            fragment_type=fragment_type,
            sequence_no=sequence_no,
            text=text,
            pending_processing=pending,
        )
        store.save_fragment(fragment)
        return fragment

    return _seed
