from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from sobi.db import Base
from sobi.services.fragments import SqlFragmentStore


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'worker-tests.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def incoming_dir(tmp_path: Path) -> Path:
    path = tmp_path / "incoming"
    path.mkdir()
    return path


@pytest.fixture
def store(engine: Engine, incoming_dir: Path, tmp_path: Path) -> SqlFragmentStore:
    return SqlFragmentStore(
        engine,
        incoming_dir=incoming_dir,
        archive_dir=tmp_path / "archive",
        encoding="CP1252",
    )
