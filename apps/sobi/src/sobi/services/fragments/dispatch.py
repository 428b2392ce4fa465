from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum

import structlog

from sobi.db import utcnow
from sobi.services.fragments.collate import DEFAULT_BATCH_SIZE
from sobi.services.fragments.registry import ProcessorRegistry
from sobi.services.fragments.store import FragmentStore, SortOrder
from sobi.services.fragments.types import Fragment

logger = structlog.get_logger(__name__)


class UnhandledFragmentPolicy(str, Enum):
    """What happens to a fragment whose type has no registered processor.

    MARK_PROCESSED records it as done even though nothing handled it.
    LEAVE_PENDING counts the attempt and keeps it pending for a later run.
    """

    MARK_PROCESSED = "mark_processed"
    LEAVE_PENDING = "leave_pending"


class FragmentProcessingError(RuntimeError):
    def __init__(self, fragment_id: str, cause: BaseException) -> None:
        super().__init__(f"processor failed for fragment {fragment_id}: {cause}")
        self.fragment_id = fragment_id
        self.dispatched = 0


class DispatchCoordinator:
    """Routes pending fragments to their processors in pages.

    Not safe to run two instances against the same store at once. A processor
    that never returns blocks the loop.
    """

    def __init__(
        self,
        store: FragmentStore,
        registry: ProcessorRegistry,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        order: SortOrder = SortOrder.ASC,
        unhandled_policy: UnhandledFragmentPolicy = UnhandledFragmentPolicy.MARK_PROCESSED,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._store = store
        self._registry = registry
        self._batch_size = batch_size
        self._order = order
        self._unhandled_policy = unhandled_policy
        self._clock = clock

    def _mark_processed(self, fragment: Fragment) -> None:
        fragment.pending_processing = False
        fragment.processed_count += 1
        fragment.processed_date_time = self._clock()

    def _dispatch(self, fragment: Fragment) -> None:
        processor = self._registry.resolve(fragment.fragment_type)
        if processor is None:
            logger.error(
                "no_processor_registered",
                fragment_id=fragment.fragment_id,
                fragment_type=fragment.fragment_type.name,
                policy=self._unhandled_policy.value,
            )
            if self._unhandled_policy is UnhandledFragmentPolicy.LEAVE_PENDING:
                fragment.processed_count += 1
            else:
                self._mark_processed(fragment)
            self._store.save_fragment(fragment)
            return

        try:
            processor.process(fragment)
        except Exception as exc:
            raise FragmentProcessingError(fragment.fragment_id, exc) from exc

        self._mark_processed(fragment)
        self._store.save_fragment(fragment)

    def process_fragments(self, fragments: Iterable[Fragment]) -> int:
        count = 0
        for fragment in fragments:
            try:
                self._dispatch(fragment)
            except FragmentProcessingError as exc:
                exc.dispatched += count
                raise
            count += 1
        return count

    def dispatch_pending(self, *, on_batch: Callable[[], bool] | None = None) -> int:
        """Dispatches every pending fragment once; returns how many were dispatched.

        ``on_batch`` runs before each page and stops the pass when it returns False.
        A processor failure is raised with ``dispatched`` set to the count so far.
        """
        total = 0
        cursor: Fragment | None = None
        while True:
            if on_batch is not None and not on_batch():
                logger.warning("dispatch_interrupted", dispatched=total)
                return total

            fragments = self._store.fetch_pending_fragments(
                self._order,
                self._batch_size,
                after=cursor,
            )
            if not fragments:
                logger.debug("dispatch_idle", dispatched=total)
                return total

            logger.info("processing_fragments", fragments=len(fragments))
            try:
                total += self.process_fragments(fragments)
            except FragmentProcessingError as exc:
                exc.dispatched += total
                raise
            cursor = fragments[-1]

    def dispatch_fragment(self, fragment_id: str) -> Fragment:
        fragment = self._store.fetch_fragment(fragment_id)
        self._dispatch(fragment)
        return fragment

    def update_pending_processing(self, fragment_id: str, pending: bool) -> Fragment:
        fragment = self._store.fetch_fragment(fragment_id)
        fragment.pending_processing = pending
        self._store.save_fragment(fragment)
        logger.info("fragment_pending_updated", fragment_id=fragment_id, pending=pending)
        return fragment

    def record_failure(self, fragment_id: str, *, max_attempts: int) -> bool:
        """Counts a failed processor attempt; True if the fragment stays pending."""
        fragment = self._store.fetch_fragment(fragment_id)
        fragment.processed_count += 1
        requeue = fragment.processed_count < max_attempts
        fragment.pending_processing = requeue
        self._store.save_fragment(fragment)
        if requeue:
            logger.warning(
                "fragment_requeued",
                fragment_id=fragment_id,
                attempts=fragment.processed_count,
                max_attempts=max_attempts,
            )
        else:
            logger.error(
                "fragment_abandoned",
                fragment_id=fragment_id,
                attempts=fragment.processed_count,
                max_attempts=max_attempts,
            )
        return requeue
