"""FastAPI application for Hookpost."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hookpost import __version__
from hookpost.config import Settings
from hookpost.exceptions import (
    ConfigurationError,
    DeliveryStateError,
    HookpostError,
    NotFoundError,
    UnauthorizedError,
    VerificationError,
)
from hookpost.logging import configure_logging, get_logger
from hookpost.service import HookpostService

from .router import router, set_service

logger = get_logger(__name__)

# First match wins, so subclasses come before their bases
_ERROR_STATUS: list[tuple[type[HookpostError], int, str]] = [
    (NotFoundError, 404, "info"),
    (UnauthorizedError, 403, "warning"),
    (VerificationError, 400, "info"),
    (ConfigurationError, 400, "warning"),
    (DeliveryStateError, 409, "info"),
]


def error_status(exc: HookpostError) -> tuple[int, str]:
    """HTTP status and log level for a domain error. Unlisted errors are 500s."""
    for error_type, status_code, level in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, level
    return 500, "error"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Initializes the HookpostService on startup, resumes deliveries a
    previous process left unfinished, and drains in-flight deliveries on
    shutdown.
    """
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting Hookpost API", log_level=settings.log_level, log_format=settings.log_format
    )

    service = HookpostService.create(settings)
    await service.initialize()
    set_service(service)

    try:
        await service.dispatcher.resume_pending()
    except Exception as e:
        logger.warning(f"Failed to resume pending deliveries: {e}")

    yield

    await service.close()
    set_service(None)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from hookpost.api import create_app

        app = create_app()
        # Run with: uvicorn hookpost.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Hookpost",
        description="Signed webhook delivery with retries and a delivery log.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
            max_age=settings.cors_max_age,
        )

    @app.exception_handler(HookpostError)
    async def hookpost_error_handler(request: Request, exc: HookpostError) -> JSONResponse:
        status_code, level = error_status(exc)
        getattr(logger, level)(
            "Request failed",
            status_code=status_code,
            code=exc.code,
            error=exc.message,
            path=request.url.path,
        )
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
