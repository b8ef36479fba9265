"""Health check endpoints."""

from datetime import datetime

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from podium.api.dependencies import get_config, get_db, get_redis
from podium.config import EngineConfig
from podium.services.clock import utcnow
from podium.services.lifecycle import WeekLifecycleManager

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime


class ReadyCheck(BaseModel):
    """Individual readiness check."""

    status: str
    message: str | None = None


class ReadyResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    checks: dict[str, ReadyCheck]


@router.get("/health", response_model=HealthResponse)
async def health():
    """
    Basic health check.

    Returns healthy if the service is running.
    """
    return HealthResponse(
        status="healthy",
        timestamp=utcnow(),
    )


@router.get("/ready", response_model=ReadyResponse)
async def ready(
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis),
    config: EngineConfig = Depends(get_config),
):
    """
    Readiness check for all dependencies.

    Checks:
    - Database connectivity
    - Redis connectivity (broker and event channel)
    - Engine configuration loaded

    The current period is reported but does not affect readiness.
    """
    checks = {}
    all_ready = True

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        checks["db"] = ReadyCheck(status="ok")
    except Exception as e:
        checks["db"] = ReadyCheck(status="error", message=str(e))
        all_ready = False

    # Check Redis
    try:
        await redis_client.ping()
        checks["redis"] = ReadyCheck(status="ok")
    except Exception as e:
        checks["redis"] = ReadyCheck(status="error", message=str(e))
        all_ready = False

    checks["config"] = ReadyCheck(
        status="ok",
        message=f"trials={config.odds.trials} odds=[{config.odds.min_odd}, {config.odds.max_odd}]",
    )

    if checks["db"].status == "ok":
        period = await WeekLifecycleManager(db).current_period()
        checks["period"] = ReadyCheck(
            status="ok",
            message=f"{period.status} {period.iso_year}-W{period.iso_week:02d}" if period else "none",
        )

    return ReadyResponse(ready=all_ready, checks=checks)
