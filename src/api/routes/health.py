"""
Health endpoint: store, event bus, push mode and registered triggers.
"""

import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter, Depends

from src.api.dependencies import get_database
from src.api.models import ComponentHealth, HealthResponse
from src.config.settings import get_settings
from src.scheduled_alerts.triggers import TRIGGER_ADAPTERS
from src.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _probe(check: Callable[[], Awaitable[bool | None]]) -> ComponentHealth:
    """Run ``check`` and time it. ``False`` or an exception means unhealthy."""
    start = time.perf_counter()
    error: str | None = None
    try:
        ok = (await check()) is not False
    except Exception as e:
        ok = False
        error = str(e)
    latency_ms = round((time.perf_counter() - start) * 1000, 2)

    return ComponentHealth(
        status="healthy" if ok else "unhealthy",
        latency_ms=latency_ms,
        details={"error": error} if error else None,
    )


async def _check_redis(redis_url: str) -> ComponentHealth:
    client = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)
    try:
        return await _probe(client.ping)
    finally:
        await client.aclose()


def _push_component() -> ComponentHealth:
    mode = "fcm" if get_settings().fcm_configured else "dry_run"
    return ComponentHealth(status="healthy", details={"mode": mode})


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the alert store, the event bus, push delivery mode and trigger adapters.",
)
async def health_check(
    db: Database = Depends(get_database),
) -> HealthResponse:
    """
    Overall status:
    - unhealthy: the alert store is down, so nothing can be claimed
    - degraded: Redis is down, runs still work but run-completed events are lost
    - healthy: otherwise

    The push component only reports the delivery mode and never changes
    the overall status.
    """
    settings = get_settings()

    database = await _probe(db.health_check)
    try:
        redis_health = await _check_redis(str(settings.redis_url))
    except Exception as e:
        redis_health = ComponentHealth(status="unhealthy", details={"error": str(e)})

    if database.status == "unhealthy":
        status = "unhealthy"
    elif redis_health.status == "unhealthy":
        status = "degraded"
    else:
        status = "healthy"

    if status != "healthy":
        logger.warning("Health check not healthy", status=status)

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        components={
            "database": database,
            "redis": redis_health,
            "push": _push_component(),
        },
        triggers=dict(TRIGGER_ADAPTERS),
        version="0.1.0",
    )
