from typing import Any

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import AliasChoices, BaseModel, Field

from backend.container import Container, get_container
from backend.errors import AttendanceError, NoMatch, UnknownIdentity
from backend.logging_config import client_origin
from backend.models import AttendanceEvent, format_timestamp
from backend.routers.common import to_http
from backend.security import require_api_key

router = APIRouter(prefix="/api/v1", dependencies=[Depends(require_api_key)])


class ScanRequest(BaseModel):
    template: Any = Field(
        default=None,
        validation_alias=AliasChoices("template", "incomingVector"),
    )


def _record_payload(event: AttendanceEvent, name: str) -> dict:
    return {
        "id": event.id,
        "identityId": event.identity_id,
        "name": name,
        "eventType": event.event_type.value,
        "timestamp": format_timestamp(event.timestamp),
        "sourceDevice": event.source_device,
    }


@router.post("/attendance/check_in_out")
def check_in_out(
    payload: ScanRequest,
    request: Request,
    container: Container = Depends(get_container),
    x_device_id: str | None = Header(default=None),
):
    source_device = (x_device_id or "").strip() or client_origin(request)

    try:
        # Matcher work happens here, outside any per-identity lock.
        identity_id = container.resolver.resolve(payload.template)

        # Prevent ghost IDs (matcher returns an id the store no longer has)
        identity = container.identities.get(identity_id)
        if identity is None:
            raise NoMatch()

        event = container.sequencer.record_event(identity_id, source_device)
    except AttendanceError as exc:
        raise to_http(request, exc) from exc

    event_type = event.event_type.value
    return {
        "message": (
            f"{identity.display_name}, your attendance has been recorded. "
            f"You are clocked {event_type}."
        ),
        "eventType": event_type,
        "timestamp": format_timestamp(event.timestamp),
    }


@router.get("/attendance/report")
def attendance_report(
    request: Request,
    identity_id: str | None = Query(default=None, alias="identityId"),
    limit: int | None = Query(default=None, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    container: Container = Depends(get_container),
):
    clean_id = (identity_id or "").strip() or None

    try:
        if clean_id is not None and container.identities.get(clean_id) is None:
            raise UnknownIdentity(clean_id)

        # page first: the ledger only grows, so the count is never behind the page
        events = container.ledger.list_events(clean_id, limit=limit, offset=offset)
        total = container.ledger.count_events(clean_id)

        names: dict[str, str] = {}
        for event in events:
            if event.identity_id not in names:
                identity = container.identities.get(event.identity_id)
                names[event.identity_id] = identity.display_name if identity else "N/A"
    except AttendanceError as exc:
        raise to_http(request, exc) from exc

    return {
        "totalRecords": total,
        "records": [_record_payload(e, names[e.identity_id]) for e in events],
    }
