"""
Caseflow Backend - FastAPI Application Entry Point

Case lifecycle service for interior fit-out projects: enquiries become
leads, leads move through site visit, design, costing and execution, and
every change is recorded in an append-only per-case history.
"""

import time
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .core.config import settings
from .core.database import engine, init_db
from .core.errors import (
    CaseflowError,
    NotFoundError,
    PartialPipelineFailure,
    StoreUnavailable,
    ValidationError,
)
from .core.logging_config import setup_logging
from .api import health_router, cases_router, enquiries_router, rfqs_router
from .api.dependencies import get_document_store, reset_document_store


logger = logging.getLogger(__name__)


# =============================================================================
# Performance Monitoring Middleware
# =============================================================================

class PerformanceMonitoringMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track API response times and log slow requests.

    Adds X-Response-Time header to all responses.
    """

    SLOW_REQUEST_THRESHOLD_MS = 500

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        process_time_ms = (time.time() - start_time) * 1000
        response.headers["X-Response-Time"] = f"{process_time_ms:.2f}ms"

        if process_time_ms > self.SLOW_REQUEST_THRESHOLD_MS:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} "
                f"took {process_time_ms:.2f}ms"
            )

        if settings.debug:
            logger.debug(
                f"{request.method} {request.url.path} - {process_time_ms:.2f}ms"
            )

        return response


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Configures logging, creates tables for local SQLite/development runs,
    and starts the cross-process change feed relay.
    """
    setup_logging()
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    if settings.is_production and settings.secret_key == "dev-secret-key-change-in-production":
        logger.critical("SECRET_KEY still uses the development default; refusing to start")
        raise RuntimeError("Insecure SECRET_KEY in production")

    # Production schemas are managed by migrations
    if settings.is_development or settings.is_sqlite:
        init_db()
        logger.info("Development mode - document tables created")

    store = get_document_store()
    if store.change_feed.start_relay():
        logger.info("Change feed relaying writes from other processes")
    else:
        logger.info(f"Change feed mode: {store.change_feed.mode}")

    yield

    logger.info("Shutting down...")
    reset_document_store()
    engine.dispose()


# =============================================================================
# Application Factory
# =============================================================================

def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Case lifecycle API for interior fit-out projects: enquiries, "
            "leads, stage transitions, task assignment, audit history and RFQs."
        ),
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Compress responses > 1KB
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(PerformanceMonitoringMiddleware)

    cors_origins = settings.cors_origins_list
    allow_all = "*" in cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else cors_origins,
        allow_credentials=not allow_all,  # credentials not compatible with wildcard
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Response-Time", "Retry-After"],
    )

    app.include_router(health_router)
    app.include_router(cases_router)
    app.include_router(enquiries_router)
    app.include_router(rfqs_router)

    register_exception_handlers(app)

    return app


# =============================================================================
# Exception Handlers
# =============================================================================

def _error_body(error: str, message: str, state: dict = None) -> dict:
    body = {"success": False, "error": error, "message": message}
    if state:
        body["state"] = state
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """Map the domain error taxonomy to HTTP responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(exc.error_code, exc.message),
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body(exc.error_code, exc.message),
        )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error(f"Store unavailable on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=_error_body(
                exc.error_code,
                "The document store is temporarily unavailable. Re-read current state before retrying.",
            ),
            headers={"Retry-After": "5"},
        )

    @app.exception_handler(PartialPipelineFailure)
    async def partial_failure_handler(request: Request, exc: PartialPipelineFailure) -> JSONResponse:
        logger.error(
            f"Partial failure on {request.method} {request.url.path}: "
            f"completed={exc.completed_steps} failed={exc.failed_step} state={exc.state}"
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(exc.error_code, exc.message, state=exc.state),
        )

    @app.exception_handler(CaseflowError)
    async def caseflow_error_handler(request: Request, exc: CaseflowError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=_error_body(exc.error_code, exc.message),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Handle unhandled exceptions.

        Logs the error and returns a generic message (never expose internals).
        """
        logger.error(f"Unhandled exception on {request.url.path}: {type(exc).__name__}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("internal_error", "An unexpected error occurred. Please try again later."),
        )


app = create_application()


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict:
    """
    Root endpoint returning API information.
    """
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "docs": "/docs" if settings.is_development else "disabled",
    }


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "caseflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
