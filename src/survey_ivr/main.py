"""
FastAPI application entry point.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from survey_ivr.config import get_settings
from survey_ivr.ivr.engine import get_ivr_engine
from survey_ivr.ivr.reaper import run_session_reaper
from survey_ivr.ivr.router import router as ivr_router
from survey_ivr.shared.database import get_database_manager
from survey_ivr.shared.exceptions import (
    AppError,
    InvalidStateError,
    NotFoundError,
    PersistenceFailureError,
)
from survey_ivr.shared.logging import get_logger, setup_logging
from survey_ivr.shared.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    setup_logging(settings)
    db_manager = get_database_manager()

    logger.info("Application starting", extra={"env": settings.app_env})

    if settings.database_create_tables:
        await db_manager.create_tables()
        logger.info("Database tables ensured")

    reaper_task: asyncio.Task[None] | None = None
    if settings.ivr_reaper_enabled:
        reaper_task = asyncio.create_task(
            run_session_reaper(get_ivr_engine(), settings.ivr_reaper_interval_seconds)
        )
        app.state.reaper_task = reaper_task
        logger.info("Session reaper enabled; background task created")

    yield

    logger.info("Shutting down application")

    if reaper_task is not None:
        reaper_task.cancel()
        try:
            await reaper_task
        except asyncio.CancelledError:
            pass
        logger.info("Session reaper stopped")

    await db_manager.close()
    logger.info("Application shutdown complete")


def _error_response(status_code: int, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"code": exc.code, "message": exc.message}},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Survey IVR API",
        description="Interactive voice response survey sessions",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Map domain exceptions to HTTP responses
    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(InvalidStateError)
    async def _invalid_state(_: Request, exc: InvalidStateError) -> JSONResponse:
        return _error_response(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(PersistenceFailureError)
    async def _persistence_failure(_: Request, exc: PersistenceFailureError) -> JSONResponse:
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc)

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=422,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(ivr_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
