from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class EventType(str, Enum):
    IN = "IN"
    OUT = "OUT"


@dataclass(frozen=True)
class Identity:
    id: str
    display_name: str
    template: tuple[float, ...]
    enrolled_at: datetime


@dataclass(frozen=True)
class AttendanceEvent:
    id: str
    identity_id: str
    timestamp: datetime
    event_type: EventType
    source_device: str

    def sort_key(self) -> tuple[datetime, str]:
        return (self.timestamp, self.id)


@dataclass(frozen=True)
class Match:
    identity_id: str
    score: float


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    # Fixed microsecond precision keeps lexical order equal to time order.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
