"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_services
from core import __version__
from core.db import read_connection
from core.observability.metrics import get_metrics
from sync_dispatcher.factory import PostingServices


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]
    metrics: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(services: PostingServices = Depends(get_services)) -> HealthResponse:
    """Health check endpoint, with dispatcher metrics."""
    try:
        with read_connection(services.settings.db_path) as conn:
            conn.execute("SELECT 1 FROM posting_queue LIMIT 1")
        storage = "up"
    except Exception:
        storage = "down"

    return HealthResponse(
        status="healthy" if storage == "up" else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        services={
            "api": "up",
            "storage": storage,
        },
        metrics=get_metrics().get_summary(),
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
