"""Health & Readiness Probes — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health always returns 200 if the process is up (liveness)
    - GET /health/ready returns 503 if the session backend is unreachable (readiness)

Design Decisions:
    - Separate liveness/readiness: liveness restarts, readiness removes from the load balancer
"""

import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from toolhost.api.routes.mcp_endpoint import get_runtime
from toolhost.services.session_runtime import SessionRuntime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(runtime: SessionRuntime = Depends(get_runtime)):
    """Basic liveness probe."""
    return {
        "status": "ok",
        "mode": runtime.mode,
        "activeSessions": runtime.active_sessions,
    }


@router.get("/ready")
async def readiness_check(runtime: SessionRuntime = Depends(get_runtime)):
    """Readiness probe — includes session backend connectivity."""
    if not await runtime.health_check():
        logger.warning("Readiness check failed: session backend unavailable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "session_backend_unavailable",
            },
        )
    return {"status": "ready", "checks": {"session_backend": "healthy"}}
