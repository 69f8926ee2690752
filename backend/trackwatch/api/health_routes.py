"""
Health Check API Routes

Provides Kubernetes-compatible health check endpoints for the application.

Endpoints:
- /health/live: Liveness probe - is the application running?
- /health/ready: Readiness probe - is the application ready to receive traffic?
- /health/detailed: Detailed health status of all dependencies
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..config import Config
from ..schemas.responses import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


async def _check_database(engine) -> Dict[str, Any]:
    start = time.time()
    try:
        await asyncio.to_thread(engine.store.ping)
        return {
            "service": "database",
            "status": "healthy",
            "message": "Database connected",
            "latency_ms": round((time.time() - start) * 1000, 2),
        }
    except Exception as e:
        return {"service": "database", "status": "unhealthy", "message": f"Database error: {e}"}


async def _check_qbittorrent(engine) -> Dict[str, Any]:
    start = time.time()
    result = await engine.client.test_connection()
    health = {
        "service": "qbittorrent",
        "status": "healthy" if result.get("success") else "unhealthy",
        "message": result.get("message"),
        "latency_ms": round((time.time() - start) * 1000, 2),
    }
    if result.get("version"):
        health["version"] = result["version"]
    return health


@router.get("/live")
async def liveness_probe():
    """
    Kubernetes liveness probe.

    Returns 200 if the application is running. Does not touch dependencies.
    """
    return {"status": "alive"}


@router.get("/ready")
async def readiness_probe(request: Request):
    """
    Kubernetes readiness probe.

    Returns:
        200: Database reachable
        503: Database unreachable
    """
    db_health = await _check_database(request.app.state.engine)
    if db_health["status"] == "healthy":
        return {"status": "ready", "database": "connected"}

    return JSONResponse(
        content={"status": "not_ready", "reason": db_health["message"]},
        status_code=503,
    )


@router.get("/detailed", response_model=HealthResponse)
async def detailed_health(request: Request):
    """
    Detailed health of the database, the download client and the engine.

    The overall status is "unhealthy" when the database is down, "degraded"
    when qBittorrent is unreachable or the supervisor has halted.
    """
    engine = request.app.state.engine
    database, qbittorrent = await asyncio.gather(
        _check_database(engine),
        _check_qbittorrent(engine),
    )
    engine_status = engine.get_status()

    if database["status"] != "healthy":
        status = "unhealthy"
    elif qbittorrent["status"] != "healthy" or engine_status["supervisor"]["halted"]:
        status = "degraded"
    else:
        status = "healthy"

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": Config.APP_VERSION,
        "services": {"database": database, "qbittorrent": qbittorrent},
        "engine": engine_status,
    }
