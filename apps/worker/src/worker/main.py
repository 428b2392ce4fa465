from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import os
from random import random
from time import sleep

import structlog
from sqlalchemy.engine import Engine

from sobi.config import get_settings
from sobi.db import get_engine
from sobi.dependencies import get_collator, get_dispatcher, get_registry, get_store
from sobi.leases import acquire_lease, release_lease
from sobi.logging_config import configure_logging
from sobi.services.fragments import (
    CollationCoordinator,
    DispatchCoordinator,
    FragmentProcessingError,
)

logger = structlog.get_logger(__name__)

COLLATE_LEASE = "collate"
DISPATCH_LEASE = "dispatch"


def _get_retry_base_seconds() -> float:
    value = os.getenv("WORKER_DB_RETRY_BASE_SECONDS", "1")
    return max(0.1, float(value))


def _get_retry_max_seconds() -> float:
    value = os.getenv("WORKER_DB_RETRY_MAX_SECONDS", "30")
    return max(0.5, float(value))


@dataclass(frozen=True)
class CycleResult:
    collated: int
    dispatched: int
    failed_fragment_id: str | None = None

    @property
    def idle(self) -> bool:
        return self.collated == 0 and self.dispatched == 0 and self.failed_fragment_id is None


def _handle_processing_failure(
    dispatcher: DispatchCoordinator,
    exc: FragmentProcessingError,
    *,
    max_attempts: int,
) -> None:
    logger.error(
        "fragment_processing_failed",
        fragment_id=exc.fragment_id,
        error=str(exc.__cause__ or exc),
    )
    dispatcher.record_failure(exc.fragment_id, max_attempts=max_attempts)


def _lease_renewer(engine: Engine, name: str, worker_id: str, lease_seconds: int) -> Callable[[], bool]:
    def _renew() -> bool:
        if acquire_lease(engine, name, worker_id, lease_seconds):
            return True
        logger.warning("lease_lost", lease=name, worker_id=worker_id)
        return False

    return _renew


def run_cycle(
    engine: Engine,
    *,
    worker_id: str,
    lease_seconds: int,
    max_attempts: int,
    collator: CollationCoordinator,
    dispatcher: DispatchCoordinator,
) -> CycleResult:
    """One collate pass then one dispatch pass, each under its lease.

    Leases are renewed before every batch and released when the pass ends.
    """
    collated = 0
    dispatched = 0
    failed_fragment_id: str | None = None

    if acquire_lease(engine, COLLATE_LEASE, worker_id, lease_seconds):
        try:
            collated = collator.collate_all(
                on_batch=_lease_renewer(engine, COLLATE_LEASE, worker_id, lease_seconds)
            )
        finally:
            release_lease(engine, COLLATE_LEASE, worker_id)
    else:
        logger.info("collate_lease_unavailable", worker_id=worker_id)

    if acquire_lease(engine, DISPATCH_LEASE, worker_id, lease_seconds):
        try:
            dispatched = dispatcher.dispatch_pending(
                on_batch=_lease_renewer(engine, DISPATCH_LEASE, worker_id, lease_seconds)
            )
        except FragmentProcessingError as exc:
            _handle_processing_failure(dispatcher, exc, max_attempts=max_attempts)
            dispatched = exc.dispatched
            failed_fragment_id = exc.fragment_id
        finally:
            release_lease(engine, DISPATCH_LEASE, worker_id)
    else:
        logger.info("dispatch_lease_unavailable", worker_id=worker_id)

    return CycleResult(
        collated=collated,
        dispatched=dispatched,
        failed_fragment_id=failed_fragment_id,
    )


def main() -> None:
    configure_logging()
    settings = get_settings()
    engine = get_engine()
    store = get_store(engine)
    collator = get_collator(store)
    dispatcher = get_dispatcher(store, get_registry())

    base = _get_retry_base_seconds()
    max_delay = _get_retry_max_seconds()
    delay = base

    logger.info("worker_started", worker_id=settings.worker_id)
    while True:
        try:
            result = run_cycle(
                engine,
                worker_id=settings.worker_id,
                lease_seconds=settings.worker_lease_seconds,
                max_attempts=settings.worker_max_attempts,
                collator=collator,
                dispatcher=dispatcher,
            )
        except Exception as exc:
            logger.error("worker_cycle_failed", error=repr(exc), retry_in=round(delay, 1), exc_info=True)
            sleep(delay + random() * 0.2 * delay)
            delay = min(delay * 2, max_delay)
            continue

        if result.failed_fragment_id is not None:
            sleep(delay + random() * 0.2 * delay)
            delay = min(delay * 2, max_delay)
            continue

        delay = base
        if result.idle:
            sleep(settings.worker_poll_seconds)


if __name__ == "__main__":
    main()
