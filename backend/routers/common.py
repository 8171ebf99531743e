import logging

from fastapi import HTTPException, Request

from backend.errors import (
    AttendanceError,
    DuplicateEnrollment,
    MalformedInput,
    NoMatch,
    SequenceConflict,
    SequencerBusy,
    StoreUnavailable,
    UnknownIdentity,
)
from backend.logging_config import log_rejection

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[AttendanceError], int]] = [
    (MalformedInput, 400),
    (NoMatch, 404),
    (UnknownIdentity, 404),
    (DuplicateEnrollment, 409),
    (SequenceConflict, 409),
    (SequencerBusy, 503),
    (StoreUnavailable, 503),
]


def to_http(request: Request, exc: AttendanceError) -> HTTPException:
    """Translate a domain error into the HTTP error the API reports, and audit it."""
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break

    detail = str(exc)
    if isinstance(exc, StoreUnavailable):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        detail = "Attendance store unavailable. Please retry."
    elif isinstance(exc, SequencerBusy):
        detail = "Another scan for this person is being recorded. Please try again."
    elif isinstance(exc, SequenceConflict):
        detail = "Attendance changed concurrently for this person. Please scan again."

    log_rejection(request, status_code, type(exc).__name__)
    return HTTPException(status_code=status_code, detail=detail)
