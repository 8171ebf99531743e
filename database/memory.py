from __future__ import annotations

import bisect
import threading
from typing import Optional, Sequence

from backend.errors import SequenceConflict
from backend.models import AttendanceEvent, Identity


class InMemoryIdentityStore:
    """Dict-backed identity store for tests and single-process deployments."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: dict[str, Identity] = {}

    def add(self, identity: Identity) -> None:
        with self._lock:
            if identity.id in self._by_id:
                raise ValueError(f"Identity {identity.id} already exists.")
            self._by_id[identity.id] = identity

    def get(self, identity_id: str) -> Optional[Identity]:
        with self._lock:
            return self._by_id.get(identity_id)

    def all_identities(self) -> Sequence[Identity]:
        with self._lock:
            return sorted(self._by_id.values(), key=lambda i: i.id)

    def shortlist(self, template_length: int) -> Sequence[Identity]:
        return [i for i in self.all_identities() if len(i.template) == template_length]

    def find_by_name(self, display_name: str) -> Optional[Identity]:
        wanted = display_name.strip().casefold()
        with self._lock:
            for identity in self._by_id.values():
                if identity.display_name.casefold() == wanted:
                    return identity
        return None

    def count(self) -> int:
        with self._lock:
            return len(self._by_id)


class InMemoryAttendanceLedger:
    """Append-only event ledger.

    Events are kept per identity in ascending (timestamp, id) order, so the
    latest event is the tail of the list.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._by_identity: dict[str, list[AttendanceEvent]] = {}
        self._total = 0

    def latest_event(self, identity_id: str) -> Optional[AttendanceEvent]:
        with self._lock:
            events = self._by_identity.get(identity_id)
            return events[-1] if events else None

    def append(self, event: AttendanceEvent, *, after: Optional[str]) -> None:
        with self._lock:
            events = self._by_identity.setdefault(event.identity_id, [])
            current = events[-1].id if events else None
            if current != after:
                raise SequenceConflict(
                    f"Latest event for identity {event.identity_id} changed before append."
                )
            keys = [e.sort_key() for e in events]
            events.insert(bisect.bisect_right(keys, event.sort_key()), event)
            self._total += 1

    def list_events(
        self,
        identity_id: Optional[str] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Sequence[AttendanceEvent]:
        with self._lock:
            if identity_id is not None:
                snapshot = list(self._by_identity.get(identity_id, ()))
            else:
                snapshot = [e for events in self._by_identity.values() for e in events]

        snapshot.sort(key=AttendanceEvent.sort_key, reverse=True)
        start = max(0, offset)
        if limit is None:
            return snapshot[start:]
        return snapshot[start:start + limit]

    def count_events(self, identity_id: Optional[str] = None) -> int:
        with self._lock:
            if identity_id is None:
                return self._total
            return len(self._by_identity.get(identity_id, ()))
