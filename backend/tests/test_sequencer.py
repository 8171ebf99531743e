import threading
from datetime import datetime, timedelta, timezone

import pytest

from backend.errors import SequenceConflict, SequencerBusy, StoreUnavailable
from backend.models import AttendanceEvent, EventType
from backend.services.sequencer import (
    AttendanceSequencer,
    KeyedLock,
    MonotonicIds,
    next_event_type,
)
from database.db import SqliteAttendanceLedger, create_tables
from database.memory import InMemoryAttendanceLedger

T0 = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


class StepClock:
    def __init__(self, start=T0, step=timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request, tmp_path):
    if request.param == "memory":
        return InMemoryAttendanceLedger()
    db_path = tmp_path / "ledger.db"
    create_tables(db_path)
    return SqliteAttendanceLedger(db_path)


def _event(event_id, event_type, identity_id="alice", at=T0):
    return AttendanceEvent(
        id=event_id,
        identity_id=identity_id,
        timestamp=at,
        event_type=event_type,
        source_device="test",
    )


def test_next_event_type():
    assert next_event_type(None) == EventType.IN
    assert next_event_type(_event("1", EventType.OUT)) == EventType.IN
    assert next_event_type(_event("1", EventType.IN)) == EventType.OUT


def test_events_alternate_starting_with_in(ledger):
    sequencer = AttendanceSequencer(ledger, clock=StepClock())

    types = [sequencer.record_event("alice", "lobby").event_type for _ in range(6)]

    assert types == [EventType.IN, EventType.OUT] * 3
    latest = ledger.latest_event("alice")
    assert latest.event_type == EventType.OUT
    assert latest.source_device == "lobby"


def test_identities_are_sequenced_independently(ledger):
    sequencer = AttendanceSequencer(ledger, clock=StepClock())

    assert sequencer.record_event("alice").event_type == EventType.IN
    assert sequencer.record_event("bob").event_type == EventType.IN
    assert sequencer.record_event("alice").event_type == EventType.OUT
    assert sequencer.record_event("bob").event_type == EventType.OUT
    assert sequencer.record_event("bob").event_type == EventType.IN


def test_concurrent_scans_never_double_clock_in(ledger):
    sequencer = AttendanceSequencer(ledger)
    workers = 16
    barrier = threading.Barrier(workers)
    errors: list[BaseException] = []

    def scan(identity_id):
        try:
            barrier.wait()
            sequencer.record_event(identity_id)
        except BaseException as exc:
            errors.append(exc)

    threads = [
        threading.Thread(target=scan, args=("alice" if i % 2 else "bob",))
        for i in range(workers)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    for identity_id in ("alice", "bob"):
        history = list(reversed(ledger.list_events(identity_id)))
        assert len(history) == workers // 2
        assert [e.event_type for e in history] == [EventType.IN, EventType.OUT] * (workers // 4)
        timestamps = [e.timestamp for e in history]
        assert timestamps == sorted(timestamps)


class GatedLedger(InMemoryAttendanceLedger):
    """Blocks appends for one identity until released."""

    def __init__(self, blocked_identity):
        super().__init__()
        self.blocked_identity = blocked_identity
        self.entered = threading.Event()
        self.release = threading.Event()

    def append(self, event, *, after):
        if event.identity_id == self.blocked_identity:
            self.entered.set()
            assert self.release.wait(timeout=5)
        super().append(event, after=after)


def _start_blocked_scan(sequencer, ledger, identity_id):
    worker = threading.Thread(target=sequencer.record_event, args=(identity_id,))
    worker.start()
    assert ledger.entered.wait(timeout=5)
    return worker


def test_other_identities_are_not_blocked():
    ledger = GatedLedger("alice")
    sequencer = AttendanceSequencer(ledger)
    worker = _start_blocked_scan(sequencer, ledger, "alice")
    try:
        event = sequencer.record_event("bob", timeout=1.0)
        assert event.event_type == EventType.IN
    finally:
        ledger.release.set()
        worker.join()

    assert ledger.latest_event("alice").event_type == EventType.IN


def test_lock_timeout_aborts_without_writing():
    ledger = GatedLedger("alice")
    sequencer = AttendanceSequencer(ledger)
    worker = _start_blocked_scan(sequencer, ledger, "alice")
    try:
        with pytest.raises(SequencerBusy):
            sequencer.record_event("alice", timeout=0.05)
    finally:
        ledger.release.set()
        worker.join()

    assert ledger.count_events("alice") == 1
    assert sequencer.record_event("alice").event_type == EventType.OUT


def test_configured_lock_timeout_is_the_default():
    ledger = GatedLedger("alice")
    sequencer = AttendanceSequencer(ledger, lock_timeout=0.05)
    worker = _start_blocked_scan(sequencer, ledger, "alice")
    try:
        with pytest.raises(SequencerBusy):
            sequencer.record_event("alice")
    finally:
        ledger.release.set()
        worker.join()


def test_ledger_failure_propagates_without_retry():
    failure = StoreUnavailable("disk gone")

    class FailingLedger(InMemoryAttendanceLedger):
        attempts = 0

        def append(self, event, *, after):
            FailingLedger.attempts += 1
            raise failure

    ledger = FailingLedger()
    sequencer = AttendanceSequencer(ledger)

    with pytest.raises(StoreUnavailable) as raised:
        sequencer.record_event("alice")

    assert raised.value is failure
    assert FailingLedger.attempts == 1
    assert ledger.count_events() == 0


def test_conflicting_writer_is_reported_not_overwritten(ledger):
    class StaleReadLedger:
        """Reads miss an event another process already committed."""

        def __init__(self, inner):
            self.inner = inner

        def latest_event(self, identity_id):
            return None

        def append(self, event, *, after):
            self.inner.append(event, after=after)

    ledger.append(_event("0001", EventType.IN), after=None)
    sequencer = AttendanceSequencer(StaleReadLedger(ledger), clock=StepClock())

    with pytest.raises(SequenceConflict):
        sequencer.record_event("alice")
    assert ledger.count_events("alice") == 1


def test_clock_skew_never_moves_history_backwards(ledger):
    ledger.append(_event("0001", EventType.IN, at=T0), after=None)
    earlier = StepClock(start=T0 - timedelta(minutes=5))
    sequencer = AttendanceSequencer(ledger, clock=earlier)

    event = sequencer.record_event("alice")

    assert event.event_type == EventType.OUT
    assert event.timestamp == T0
    assert ledger.latest_event("alice").id == event.id


def test_lock_entries_are_released():
    sequencer = AttendanceSequencer(InMemoryAttendanceLedger())
    for identity_id in ("alice", "bob", "carol"):
        sequencer.record_event(identity_id)
    assert len(sequencer._locks) == 0


def test_keyed_lock_times_out_for_same_key_only():
    locks = KeyedLock()
    with locks.hold("alice"):
        with pytest.raises(SequencerBusy):
            with locks.hold("alice", timeout=0.01):
                pass
        with locks.hold("bob", timeout=0.01):
            assert len(locks) == 2
    assert len(locks) == 0


def test_monotonic_ids_increase_with_a_frozen_clock():
    ids = MonotonicIds(clock_ns=lambda: 1_700_000_000_000_000_000)
    issued = [ids() for _ in range(50)]
    assert issued == sorted(issued)
    assert len(set(issued)) == len(issued)
    assert all(len(i) == 24 for i in issued)
