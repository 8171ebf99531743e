import hmac
import logging
import secrets

from fastapi import Header, HTTPException, Request

from backend.errors import Unauthorized
from backend.logging_config import log_rejection

logger = logging.getLogger(__name__)

UNAUTHORIZED_DETAIL = "Unauthorized: Invalid or missing X-API-Key header."


class ApiKeyGate:
    """Constant-time comparator for the pre-shared API key."""

    def __init__(self, secret: str):
        self._secret = (secret or "").strip()

    @classmethod
    def from_config(cls, secret: str | None) -> "ApiKeyGate":
        clean = (secret or "").strip()
        if not clean:
            # 32 bytes -> 64 hex chars; clients cannot know it, so set BIOPUNCH_API_KEY.
            clean = secrets.token_hex(32)
            logger.warning("BIOPUNCH_API_KEY is not set; generated a temporary key for this process.")
        return cls(clean)

    def verify(self, candidate: str | None) -> bool:
        expected = self._secret
        provided = (candidate or "").strip()
        if not expected or not provided:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))

    def require(self, candidate: str | None) -> None:
        if not self.verify(candidate):
            raise Unauthorized(UNAUTHORIZED_DETAIL)


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None),
) -> None:
    gate: ApiKeyGate = request.app.state.container.gate
    try:
        gate.require(x_api_key)
    except Unauthorized as exc:
        log_rejection(request, 401, "invalid or missing API key")
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    logger.debug("API key validated for request: %s", request.url.path)
