"""
Logging configuration for the attendance backend.

Rejections are logged with caller origin, method and path so misuse can be
audited. Request bodies are never logged: they carry biometric templates.
"""

import logging
import sys

from fastapi import Request

_HANDLER_NAME = "biopunch-console"

audit_logger = logging.getLogger("biopunch.audit")


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once.

    Args:
        level: Logging level name (DEBUG, INFO, ...)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    # create_app() may run several times in one process (tests)
    if any(h.get_name() == _HANDLER_NAME for h in root_logger.handlers):
        return

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.set_name(_HANDLER_NAME)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    root_logger.addHandler(console_handler)


def client_origin(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def log_rejection(request: Request, status_code: int, reason: str) -> None:
    audit_logger.warning(
        "Rejected %s %s from %s: %d %s",
        request.method,
        request.url.path,
        client_origin(request),
        status_code,
        reason,
    )
