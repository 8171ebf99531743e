from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from backend import config
from backend.matcher import CosineMatcher, Matcher
from backend.security import ApiKeyGate
from backend.services.enrollment import EnrollmentService
from backend.services.resolution import IdentityResolver
from backend.services.sequencer import AttendanceSequencer
from database.base import AttendanceLedger, IdentityStore
from database.db import SqliteAttendanceLedger, SqliteIdentityStore, create_tables
from database.memory import InMemoryAttendanceLedger, InMemoryIdentityStore


@dataclass(frozen=True)
class Container:
    identities: IdentityStore
    ledger: AttendanceLedger
    matcher: Matcher

    gate: ApiKeyGate
    resolver: IdentityResolver
    sequencer: AttendanceSequencer
    enrollment: EnrollmentService

    storage_backend: str


def build_container(
    *,
    identities: IdentityStore | None = None,
    ledger: AttendanceLedger | None = None,
    matcher: Matcher | None = None,
    api_key: str | None = None,
) -> Container:
    """Wire stores and services from ``backend.config``; explicit arguments win."""
    backend = config.STORAGE_BACKEND
    if identities is None or ledger is None:
        if backend == "memory":
            identities = identities if identities is not None else InMemoryIdentityStore()
            ledger = ledger if ledger is not None else InMemoryAttendanceLedger()
        else:
            create_tables(config.DB_PATH)
            identities = identities if identities is not None else SqliteIdentityStore(config.DB_PATH)
            ledger = ledger if ledger is not None else SqliteAttendanceLedger(config.DB_PATH)
    else:
        backend = "custom"

    matcher = matcher or CosineMatcher()

    return Container(
        identities=identities,
        ledger=ledger,
        matcher=matcher,
        gate=ApiKeyGate.from_config(config.API_KEY if api_key is None else api_key),
        resolver=IdentityResolver(
            identities,
            matcher,
            min_template_length=config.MIN_TEMPLATE_LENGTH,
            acceptance_threshold=config.MATCH_THRESHOLD,
            shortlist_by_length=config.SHORTLIST_BY_LENGTH,
        ),
        sequencer=AttendanceSequencer(
            ledger,
            lock_timeout=config.SEQUENCER_LOCK_TIMEOUT_SECONDS,
        ),
        enrollment=EnrollmentService(
            identities,
            unique_names=config.ENROLL_UNIQUE_NAMES,
        ),
        storage_backend=backend,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container
