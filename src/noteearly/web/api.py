"""FastAPI application factory.

Main entry point for the NoteEarly Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from noteearly import __version__
from noteearly.config.app_config import load_app_config
from noteearly.core.errors import AppError
from noteearly.db.database import init_db
from noteearly.utils.log_config import configure_logging
from noteearly.web.routes import (
    analytics_router,
    auth_router,
    health_router,
    profiles_router,
    progress_router,
    reading_modules_router,
    subscriptions_router,
)

logger = structlog.get_logger(__name__)


def _error_body(message: str) -> dict:
    return {"status": "error", "message": message, "data": None}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Domain errors carry their own status code."""
    if exc.status_code >= 500:
        logger.error("api.app_error", path=request.url.path, status_code=exc.status_code, error=exc.message)
    else:
        logger.info("api.request_rejected", path=request.url.path, status_code=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema validation failures are reported as 400 with readable messages."""
    messages = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc)
        messages.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body("; ".join(messages)))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("api.unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("An unexpected error occurred."),
    )


def create_app(database_url: str | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        database_url: Override the configured database URL (tests use
            an in-memory SQLite database)

    Returns:
        Configured FastAPI app instance
    """
    config = load_app_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for startup/shutdown events."""
        configure_logging(config.log_format)
        engine = init_db(database_url)
        logger.info(
            "api_startup",
            version=__version__,
            database=engine.url.render_as_string(hide_password=True),
            api_prefix=config.api_prefix,
        )
        yield
        logger.info("api_shutdown")

    app = FastAPI(
        title="NoteEarly API",
        description="Reading comprehension platform for students, teachers and parents",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    for router in (
        health_router,
        auth_router,
        profiles_router,
        progress_router,
        reading_modules_router,
        subscriptions_router,
        analytics_router,
    ):
        app.include_router(router, prefix=config.api_prefix)

    return app
