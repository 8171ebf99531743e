import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import config
from backend.container import Container, build_container
from backend.logging_config import log_rejection, setup_logging
from backend.routers import attendance, core, identities

logger = logging.getLogger(__name__)


def _describe_validation_errors(exc: RequestValidationError) -> str:
    # loc + msg only: "input" would echo the biometric template back
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Malformed request: " + "; ".join(parts)


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    log_rejection(request, 400, "request validation failed")
    return JSONResponse(status_code=400, content={"detail": _describe_validation_errors(exc)})


def create_app(container: Container | None = None) -> FastAPI:
    setup_logging(config.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            app.state.container = build_container()
        logger.info(
            "%s ready (storage=%s); endpoints secured under /api/v1/*",
            config.SERVICE_NAME,
            app.state.container.storage_backend,
        )
        yield

    app = FastAPI(title="Biopunch API", lifespan=lifespan)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOW_ORIGINS,
        allow_credentials=config.CORS_ALLOW_CREDENTIALS,
        allow_methods=config.CORS_ALLOW_METHODS,
        allow_headers=config.CORS_ALLOW_HEADERS,
    )
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(core.router)
    app.include_router(identities.router)
    app.include_router(attendance.router)
    return app


app = create_app()
