from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import AliasChoices, BaseModel, Field

from backend.container import Container, get_container
from backend.errors import AttendanceError
from backend.models import format_timestamp
from backend.routers.common import to_http
from backend.security import require_api_key

router = APIRouter(prefix="/api/v1", dependencies=[Depends(require_api_key)])


class EnrollRequest(BaseModel):
    name: Any = None
    # older terminals send "facialVector"
    template: Any = Field(
        default=None,
        validation_alias=AliasChoices("template", "facialVector"),
    )


@router.post("/identities/enroll", status_code=201)
def enroll_identity(
    payload: EnrollRequest,
    request: Request,
    container: Container = Depends(get_container),
):
    try:
        identity = container.enrollment.enroll(payload.name, payload.template)
    except AttendanceError as exc:
        raise to_http(request, exc) from exc

    # never return the template
    return {
        "id": identity.id,
        "name": identity.display_name,
        "createdAt": format_timestamp(identity.enrolled_at),
    }
