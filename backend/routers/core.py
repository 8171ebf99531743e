import logging

from fastapi import APIRouter, Depends

from backend import config
from backend.container import Container, get_container
from backend.errors import StoreUnavailable
from backend.security import require_api_key

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health(container: Container = Depends(get_container)):
    try:
        identities = container.identities.count()
        events = container.ledger.count_events()
    except StoreUnavailable as exc:
        logger.error("Health check: store unavailable: %s", exc)
        return {
            "status": "degraded",
            "service": config.SERVICE_NAME,
            "store": "unavailable",
            "identities": None,
            "events": None,
        }
    return {
        "status": "ok",
        "service": config.SERVICE_NAME,
        "store": "ok",
        "identities": identities,
        "events": events,
    }


@router.get("/api/v1/config/recognition", dependencies=[Depends(require_api_key)])
def recognition_config(container: Container = Depends(get_container)):
    return {
        "match_threshold": container.resolver.acceptance_threshold,
        "min_template_length": container.resolver.min_template_length,
        "shortlist_by_length": container.resolver.shortlist_by_length,
        "enroll_unique_names": container.enrollment.unique_names,
        "sequencer_lock_timeout_seconds": container.sequencer.lock_timeout,
        "storage_backend": container.storage_backend,
    }
