from __future__ import annotations

from typing import Optional, Protocol, Sequence

from backend.models import AttendanceEvent, Identity


class IdentityStore(Protocol):
    def add(self, identity: Identity) -> None:
        raise NotImplementedError

    def get(self, identity_id: str) -> Optional[Identity]:
        raise NotImplementedError

    def all_identities(self) -> Sequence[Identity]:
        raise NotImplementedError

    def shortlist(self, template_length: int) -> Sequence[Identity]:
        """Identities whose template has exactly ``template_length`` features."""

        raise NotImplementedError

    def find_by_name(self, display_name: str) -> Optional[Identity]:
        """Case-insensitive lookup used by the duplicate-name policy."""

        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError


class AttendanceLedger(Protocol):
    def latest_event(self, identity_id: str) -> Optional[AttendanceEvent]:
        """Most recent event by timestamp, ties broken by event id descending."""

        raise NotImplementedError

    def append(self, event: AttendanceEvent, *, after: Optional[str]) -> None:
        """Append ``event`` only if the identity's latest event id is still ``after``.

        ``after`` is None when the caller saw no prior event. Raises
        SequenceConflict otherwise; nothing is written in that case.
        """

        raise NotImplementedError

    def list_events(
        self,
        identity_id: Optional[str] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Sequence[AttendanceEvent]:
        """Events newest first (timestamp desc, id desc)."""

        raise NotImplementedError

    def count_events(self, identity_id: Optional[str] = None) -> int:
        raise NotImplementedError
