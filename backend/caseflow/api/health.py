"""
Health check endpoints for monitoring.

Endpoints:
- /health: Basic health check with document store status
- /health/ready: Readiness check for the store, change feed and broker
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.config import settings
from ..core.database import check_db_connection
from ..schemas.common import HealthResponse
from ..services.document_store import SqlDocumentStore
from .dependencies import get_document_store


logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Returns the health status of the API and its dependencies.",
)
def health_check(store: SqlDocumentStore = Depends(get_document_store)) -> HealthResponse:
    """
    Health check endpoint for monitoring systems.

    Returns:
        HealthResponse with status and component health
    """
    db_connected = check_db_connection()
    if not db_connected:
        logger.error("Database health check failed")

    return HealthResponse(
        status="healthy" if db_connected else "unhealthy",
        version=settings.app_version,
        timestamp=datetime.now(timezone.utc),
        database="connected" if db_connected else "disconnected",
        change_feed=store.change_feed.mode,
        environment=settings.environment,
    )


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Deep readiness check for all dependencies.",
)
def readiness_check(store: SqlDocumentStore = Depends(get_document_store)) -> JSONResponse:
    """
    Readiness probe for container orchestration.

    The document store is required; the change feed may run in-process
    only, which is reported as degraded rather than unready.
    """
    components: Dict[str, Any] = {}

    db_connected = check_db_connection()
    components["database"] = {
        "status": "healthy" if db_connected else "unhealthy",
        "connected": db_connected,
    }

    feed_mode = store.change_feed.mode
    components["change_feed"] = {
        "status": "healthy" if feed_mode == "redis" or not settings.change_feed_enabled else "degraded",
        "mode": feed_mode,
    }

    if not db_connected:
        overall = "unhealthy"
    elif components["change_feed"]["status"] == "degraded":
        overall = "degraded"
    else:
        overall = "healthy"

    return JSONResponse(
        status_code=200 if db_connected else 503,
        content={
            "status": overall,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": components,
        },
    )
