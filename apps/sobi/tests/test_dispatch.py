from datetime import datetime

import pytest
from structlog.testing import capture_logs

from sobi.services.fragments.dispatch import (
    DispatchCoordinator,
    FragmentProcessingError,
    UnhandledFragmentPolicy,
)
from sobi.services.fragments.registry import ProcessorRegistry
from sobi.services.fragments.store import FragmentNotFoundError, SortOrder, SqlFragmentStore
from sobi.services.fragments.types import Fragment, FragmentType

PROCESSED_AT = datetime(2026, 10, 17, 9, 30, 0)


class RecordingProcessor:
    def __init__(self) -> None:
        self.seen: list[str] = []

    def process(self, fragment: Fragment) -> None:
        self.seen.append(fragment.fragment_id)


class FailingProcessor:
    def process(self, fragment: Fragment) -> None:
        raise RuntimeError("malformed calendar xml")


def _coordinator(store: SqlFragmentStore, processors, **kwargs) -> DispatchCoordinator:
    return DispatchCoordinator(
        store,
        ProcessorRegistry(processors),
        clock=lambda: PROCESSED_AT,
        **kwargs,
    )


def test_dispatch_pending_routes_by_type_and_marks_everything_processed(
    store: SqlFragmentStore,
    seed_fragment,
) -> None:
    bill = seed_fragment(FragmentType.BILL, 0)
    calendar = seed_fragment(FragmentType.CALENDAR, 1)
    committee = seed_fragment(FragmentType.COMMITTEE, 2)
    processor = RecordingProcessor()
    coordinator = _coordinator(
        store,
        {FragmentType.BILL: processor, FragmentType.CALENDAR: processor},
    )

    with capture_logs() as logs:
        dispatched = coordinator.dispatch_pending()

    assert dispatched == 3
    assert processor.seen == [bill.fragment_id, calendar.fragment_id]
    assert store.fetch_pending_fragments(SortOrder.ASC, 100) == []
    for fragment_id in (bill.fragment_id, calendar.fragment_id, committee.fragment_id):
        stored = store.fetch_fragment(fragment_id)
        assert stored.pending_processing is False
        assert stored.processed_count == 1
        assert stored.processed_date_time == PROCESSED_AT
    unhandled = [entry for entry in logs if entry["event"] == "no_processor_registered"]
    assert [entry["fragment_id"] for entry in unhandled] == [committee.fragment_id]
    assert unhandled[0]["log_level"] == "error"


def test_leave_pending_policy_keeps_unhandled_fragments_queued(
    store: SqlFragmentStore,
    seed_fragment,
) -> None:
    bill = seed_fragment(FragmentType.BILL, 0)
    committee = seed_fragment(FragmentType.COMMITTEE, 1)
    annotation = seed_fragment(FragmentType.ANNOTATION, 2)
    coordinator = _coordinator(
        store,
        {FragmentType.BILL: RecordingProcessor()},
        batch_size=1,
        unhandled_policy=UnhandledFragmentPolicy.LEAVE_PENDING,
    )

    assert coordinator.dispatch_pending() == 3

    assert store.fetch_fragment(bill.fragment_id).pending_processing is False
    for fragment_id in (committee.fragment_id, annotation.fragment_id):
        stored = store.fetch_fragment(fragment_id)
        assert stored.pending_processing is True
        assert stored.processed_count == 1
        assert stored.processed_date_time is None


def test_dispatch_pending_walks_every_page(store: SqlFragmentStore, seed_fragment) -> None:
    for day in range(20, 25):
        seed_fragment(
            FragmentType.BILL,
            0,
            file_name=f"SOBI.D1303{day}.T060000.TXT",
            published=datetime(2013, 3, day, 6, 0, 0),
        )
    processor = RecordingProcessor()

    dispatched = _coordinator(store, {FragmentType.BILL: processor}, batch_size=2).dispatch_pending()

    assert dispatched == 5
    assert processor.seen == [f"SOBI.D1303{day}.T060000.TXT-0-BILL" for day in range(20, 25)]


def test_processor_failure_propagates_and_leaves_fragment_untouched(
    store: SqlFragmentStore,
    seed_fragment,
) -> None:
    calendar = seed_fragment(FragmentType.CALENDAR, 1)
    coordinator = _coordinator(store, {FragmentType.CALENDAR: FailingProcessor()})

    with pytest.raises(FragmentProcessingError) as excinfo:
        coordinator.dispatch_pending()

    assert excinfo.value.fragment_id == calendar.fragment_id
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    stored = store.fetch_fragment(calendar.fragment_id)
    assert stored.pending_processing is True
    assert stored.processed_count == 0


def test_dispatch_fragment_runs_a_single_fragment_on_demand(
    store: SqlFragmentStore,
    seed_fragment,
) -> None:
    bill = seed_fragment(FragmentType.BILL, 0, pending=False)
    processor = RecordingProcessor()
    coordinator = _coordinator(store, {FragmentType.BILL: processor})

    first = coordinator.dispatch_fragment(bill.fragment_id)
    second = coordinator.dispatch_fragment(bill.fragment_id)

    assert processor.seen == [bill.fragment_id, bill.fragment_id]
    assert first.processed_count == 1
    assert second.processed_count == 2
    assert store.fetch_fragment(bill.fragment_id).processed_count == 2


def test_dispatch_fragment_unknown_id_raises_not_found(store: SqlFragmentStore) -> None:
    with pytest.raises(FragmentNotFoundError):
        _coordinator(store, {}).dispatch_fragment("SOBI.D130323.T065432.TXT-9-BILL")


def test_update_pending_processing_toggles_flag(store: SqlFragmentStore, seed_fragment) -> None:
    bill = seed_fragment(FragmentType.BILL, 0, pending=False)
    coordinator = _coordinator(store, {})

    coordinator.update_pending_processing(bill.fragment_id, True)
    assert store.fetch_fragment(bill.fragment_id).pending_processing is True

    coordinator.update_pending_processing(bill.fragment_id, False)
    assert store.fetch_fragment(bill.fragment_id).pending_processing is False


def test_update_pending_processing_unknown_id_raises_not_found(store: SqlFragmentStore) -> None:
    with pytest.raises(FragmentNotFoundError):
        _coordinator(store, {}).update_pending_processing("missing", True)


def test_record_failure_requeues_until_attempts_run_out(store: SqlFragmentStore, seed_fragment) -> None:
    calendar = seed_fragment(FragmentType.CALENDAR, 1)
    coordinator = _coordinator(store, {})

    assert coordinator.record_failure(calendar.fragment_id, max_attempts=2) is True
    stored = store.fetch_fragment(calendar.fragment_id)
    assert stored.pending_processing is True
    assert stored.processed_count == 1

    assert coordinator.record_failure(calendar.fragment_id, max_attempts=2) is False
    stored = store.fetch_fragment(calendar.fragment_id)
    assert stored.pending_processing is False
    assert stored.processed_count == 2
    assert stored.processed_date_time is None


def test_batch_size_must_be_positive(store: SqlFragmentStore) -> None:
    with pytest.raises(ValueError):
        _coordinator(store, {}, batch_size=0)


def test_processor_failure_reports_fragments_dispatched_before_it(
    store: SqlFragmentStore,
    seed_fragment,
) -> None:
    for day in (20, 21, 22):
        seed_fragment(
            FragmentType.BILL,
            0,
            file_name=f"SOBI.D1303{day}.T060000.TXT",
            published=datetime(2013, 3, day, 6, 0, 0),
        )
    calendar = seed_fragment(
        FragmentType.CALENDAR,
        1,
        file_name="SOBI.D130323.T060000.TXT",
        published=datetime(2013, 3, 23, 6, 0, 0),
    )
    coordinator = _coordinator(
        store,
        {FragmentType.BILL: RecordingProcessor(), FragmentType.CALENDAR: FailingProcessor()},
        batch_size=2,
    )

    with pytest.raises(FragmentProcessingError) as excinfo:
        coordinator.dispatch_pending()

    assert excinfo.value.fragment_id == calendar.fragment_id
    assert excinfo.value.dispatched == 3


def test_dispatch_pending_stops_when_on_batch_declines(
    store: SqlFragmentStore,
    seed_fragment,
) -> None:
    for day in (20, 21, 22):
        seed_fragment(
            FragmentType.BILL,
            0,
            file_name=f"SOBI.D1303{day}.T060000.TXT",
            published=datetime(2013, 3, day, 6, 0, 0),
        )
    processor = RecordingProcessor()
    answers = [True, False]
    coordinator = _coordinator(store, {FragmentType.BILL: processor}, batch_size=2)

    dispatched = coordinator.dispatch_pending(on_batch=lambda: answers.pop(0))

    assert dispatched == 2
    assert processor.seen == [
        "SOBI.D130320.T060000.TXT-0-BILL",
        "SOBI.D130321.T060000.TXT-0-BILL",
    ]
    assert len(store.fetch_pending_fragments(SortOrder.ASC, 10)) == 1
