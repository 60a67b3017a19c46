"""
Health Check Endpoints

Liveness and readiness probes. The database is optional when the service
runs on a frame source, so an unconfigured database does not make the
service unready.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Response
from pydantic import BaseModel
from redis.exceptions import RedisError

from kpi_engine.config import get_settings
from kpi_engine.database.connection import check_database_health
from kpi_engine.serving.cache import get_redis

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _redis_health() -> Dict[str, Any]:
    redis = get_redis()
    if redis is None:
        return {"status": "not_configured"}
    try:
        await redis.ping()
    except RedisError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health of the service and its backing stores.

    `degraded` means the service answers but a configured store does not.
    """
    settings = get_settings()
    checks = {
        "database": await check_database_health(),
        "redis": await _redis_health(),
    }
    unhealthy = any(check["status"] == "unhealthy" for check in checks.values())

    return HealthResponse(
        status="degraded" if unhealthy else "healthy",
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 while the process is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """Returns 503 when the configured database does not answer."""
    db_health = await check_database_health()
    if db_health["status"] == "unhealthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
