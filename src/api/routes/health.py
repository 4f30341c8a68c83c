"""Health check endpoints."""

from __future__ import annotations

from datetime import datetime
from time import time
from typing import Any

from fastapi import APIRouter, Depends

from api.utils import get_backend
from taskboard.backend import Backend
from taskboard.exceptions import StoreError
from taskboard.repository import STATUSES

# Track server start time for uptime
start_time = time()

SERVICE = "taskboard"

router = APIRouter(prefix="/api", tags=["Health"])


@router.get("/healthz", summary="Basic Health Check", response_description="Service health status")
async def healthz() -> dict[str, Any]:
    """
    Basic health check endpoint for load balancers and monitoring.

    **Example Response:**
    ```json
    {"status": "ok", "timestamp": "2026-01-04T13:45:00.000000", "service": "taskboard"}
    ```
    """
    return {"status": "ok", "timestamp": datetime.now().isoformat(), "service": SERVICE}


@router.get(
    "/health/detailed",
    summary="Detailed Health Check",
    response_description="Service health status with a backend round trip",
)
async def health_detailed(backend: Backend = Depends(get_backend)) -> dict[str, Any]:
    """
    Health check that also reads one row from the backend.

    **Status Values:**
    - `healthy`: backend reachable
    - `degraded`: backend query failed
    """
    checks: dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": SERVICE,
        "uptime_seconds": time() - start_time,
        "checks": {},
    }

    try:
        await backend.query(STATUSES, columns="id", limit=1)
        checks["checks"]["backend"] = {"status": "ok", "message": "Connected"}
    except StoreError as e:
        checks["checks"]["backend"] = {"status": "error", "message": e.message}
        checks["status"] = "degraded"

    return checks
