from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine

from sobi.config import get_settings
from sobi.db import get_engine
from sobi.services.fragments import (
    CollationCoordinator,
    DispatchCoordinator,
    ProcessorRegistry,
    SqlFragmentStore,
    UnhandledFragmentPolicy,
)
from sobi.services.fragments.registry import parse_processor_specs


def get_store(engine: Engine | None = None) -> SqlFragmentStore:
    settings = get_settings()
    return SqlFragmentStore(
        engine or get_engine(),
        incoming_dir=Path(settings.incoming_dir),
        archive_dir=Path(settings.archive_dir),
        encoding=settings.encoding,
    )


def get_registry() -> ProcessorRegistry:
    return ProcessorRegistry.from_specs(parse_processor_specs(get_settings().processors))


def get_collator(store: SqlFragmentStore) -> CollationCoordinator:
    return CollationCoordinator(store, batch_size=get_settings().batch_size)


def get_dispatcher(store: SqlFragmentStore, registry: ProcessorRegistry) -> DispatchCoordinator:
    settings = get_settings()
    return DispatchCoordinator(
        store,
        registry,
        batch_size=settings.batch_size,
        unhandled_policy=UnhandledFragmentPolicy(settings.unhandled_policy),
    )
