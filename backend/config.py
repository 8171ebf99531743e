import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_storage_backend(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    if normalized in {"memory", "in_memory", "inmemory"}:
        return "memory"
    return "sqlite"


SERVICE_NAME = os.getenv("BIOPUNCH_SERVICE_NAME", "Facial Biometric Backend").strip() or "Facial Biometric Backend"
LOG_LEVEL = os.getenv("BIOPUNCH_LOG_LEVEL", "INFO").strip().upper() or "INFO"

# Empty means "generate a throwaway key at startup".
API_KEY = os.getenv("BIOPUNCH_API_KEY", "").strip()

STORAGE_BACKEND = _parse_storage_backend(os.getenv("BIOPUNCH_STORAGE_BACKEND"))
DB_PATH = Path(os.getenv("BIOPUNCH_DB_PATH", BASE_DIR / "database" / "biopunch.db"))
DB_TIMEOUT_SECONDS = float(os.getenv("BIOPUNCH_DB_TIMEOUT_SECONDS", "5"))

MIN_TEMPLATE_LENGTH = max(1, int(os.getenv("BIOPUNCH_MIN_TEMPLATE_LENGTH", "100")))
MATCH_THRESHOLD = float(os.getenv("BIOPUNCH_MATCH_THRESHOLD", "0.85"))
SHORTLIST_BY_LENGTH = _parse_bool(os.getenv("BIOPUNCH_SHORTLIST_BY_LENGTH"), True)
ENROLL_UNIQUE_NAMES = _parse_bool(os.getenv("BIOPUNCH_ENROLL_UNIQUE_NAMES"), True)
SEQUENCER_LOCK_TIMEOUT_SECONDS = max(
    0.0,
    float(os.getenv("BIOPUNCH_SEQUENCER_LOCK_TIMEOUT_SECONDS", "5")),
)

CORS_ALLOW_ORIGINS = _parse_csv(os.getenv("BIOPUNCH_CORS_ALLOW_ORIGINS"), ["*"])
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("BIOPUNCH_CORS_ALLOW_METHODS"),
    ["GET", "POST", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("BIOPUNCH_CORS_ALLOW_HEADERS"),
    ["Content-Type", "Authorization", "X-API-Key", "X-Device-Id"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("BIOPUNCH_CORS_ALLOW_CREDENTIALS"), False)
