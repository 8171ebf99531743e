import logging
import secrets
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator

from backend.errors import SequencerBusy
from backend.models import AttendanceEvent, EventType, utcnow
from database.base import AttendanceLedger

logger = logging.getLogger(__name__)


def next_event_type(latest: AttendanceEvent | None) -> EventType:
    """No history or last OUT => IN; last IN => OUT."""
    if latest is None or latest.event_type == EventType.OUT:
        return EventType.IN
    return EventType.OUT


class MonotonicIds:
    """
    Event ids that sort in issue order within one process:
    16 hex digits of a strictly increasing nanosecond counter + 8 random hex
    digits so ids from different processes do not collide.
    """

    def __init__(self, clock_ns: Callable[[], int] = time.time_ns):
        self._clock_ns = clock_ns
        self._lock = threading.Lock()
        self._last = 0

    def __call__(self) -> str:
        with self._lock:
            self._last = max(self._clock_ns(), self._last + 1)
            value = self._last
        return f"{value:016x}{secrets.token_hex(4)}"


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLock:
    """One mutex per key. Entries are dropped once nobody holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._slots: dict[str, _Slot] = {}

    @contextmanager
    def hold(self, key: str, timeout: float | None = None) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.users += 1

        acquired = slot.lock.acquire(timeout=-1 if timeout is None else max(0.0, timeout))
        try:
            if not acquired:
                raise SequencerBusy(f"Another scan for identity {key} is still being recorded.")
            yield
        finally:
            if acquired:
                slot.lock.release()
            with self._guard:
                slot.users -= 1
                if slot.users == 0:
                    self._slots.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)


class AttendanceSequencer:
    def __init__(
        self,
        ledger: AttendanceLedger,
        *,
        clock: Callable[[], datetime] = utcnow,
        ids: Callable[[], str] | None = None,
        lock_timeout: float | None = None,
    ):
        self._ledger = ledger
        self._clock = clock
        self._ids = ids or MonotonicIds()
        self._locks = KeyedLock()
        self.lock_timeout = lock_timeout

    def record_event(
        self,
        identity_id: str,
        source_device: str = "unknown",
        *,
        timeout: float | None = None,
    ) -> AttendanceEvent:
        """
        Append the next IN/OUT event for ``identity_id`` and return it.

        Read, decide and append run under the identity's lock. Ledger errors
        propagate unchanged and are never retried here: a retry could record
        two events for one physical scan.
        """
        wait = self.lock_timeout if timeout is None else timeout
        with self._locks.hold(identity_id, timeout=wait):
            latest = self._ledger.latest_event(identity_id)
            now = self._clock()
            if latest is not None and now < latest.timestamp:
                now = latest.timestamp

            event = AttendanceEvent(
                id=self._ids(),
                identity_id=identity_id,
                timestamp=now,
                event_type=next_event_type(latest),
                source_device=source_device,
            )
            self._ledger.append(event, after=latest.id if latest else None)

        logger.info(
            "Recorded %s for identity %s from %s",
            event.event_type.value,
            identity_id,
            source_device,
        )
        return event
