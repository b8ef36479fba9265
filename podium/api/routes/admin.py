"""Admin API endpoints.

Provides manual task triggers for the weekly lifecycle.
These endpoints should be protected in production (not implemented here).
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = structlog.get_logger(__name__)


class TaskTriggerResponse(BaseModel):
    """Response from task trigger."""
    task_name: str
    task_id: str
    status: str
    message: str


# Map of friendly names to actual Celery task names
TASK_MAP = {
    # Weekly lifecycle
    "create-period": "podium.tasks.lifecycle.create_period_task",
    "close-period": "podium.tasks.lifecycle.close_period_task",
    "finalize-period": "podium.tasks.lifecycle.finalize_period_task",
    "recompute-rankings": "podium.tasks.lifecycle.recompute_rankings_task",
    "snapshot-rankings": "podium.tasks.lifecycle.snapshot_rankings_task",
    # Ratings and odds
    "recompute-odds": "podium.tasks.odds.recompute_odds_task",
    "monthly-soft-reset": "podium.tasks.ratings.monthly_soft_reset_task",
}


@router.post("/trigger-task/{task_name}", response_model=TaskTriggerResponse)
async def trigger_task(task_name: str) -> TaskTriggerResponse:
    """
    Manually trigger a background task.

    Available tasks:
    - create-period: Create this week's betting period and its opening odds
    - close-period: Close the open period to new wagers
    - finalize-period: Determine the podium and settle (or cancel) the period
    - recompute-rankings: Recompute monthly leaderboard ranks
    - snapshot-rankings: Store current ranks as previous ranks
    - recompute-odds: Recompute live odds for the current period
    - monthly-soft-reset: Pull ratings toward the default (not idempotent)
    """
    if task_name not in TASK_MAP:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown task: {task_name}. Available: {list(TASK_MAP.keys())}"
        )

    celery_task_name = TASK_MAP[task_name]

    try:
        # Import celery app and send task
        from podium.tasks import celery_app

        result = celery_app.send_task(celery_task_name)

        logger.info(
            "task_triggered_manually",
            task_name=task_name,
            celery_task=celery_task_name,
            task_id=result.id,
        )

        return TaskTriggerResponse(
            task_name=task_name,
            task_id=result.id,
            status="submitted",
            message=f"Task {task_name} submitted successfully. Check Celery logs for progress."
        )

    except Exception as e:
        logger.error(
            "task_trigger_failed",
            task_name=task_name,
            error=str(e),
        )
        raise HTTPException(
            status_code=500,
            detail=f"Failed to trigger task: {str(e)}"
        )


@router.get("/tasks", response_model=dict[str, str])
async def list_tasks() -> dict[str, str]:
    """List all available tasks that can be triggered manually."""
    return TASK_MAP


class RaceIn(BaseModel):
    """A confirmed race result."""
    race_id: str = Field(min_length=1, max_length=64)
    raced_at: datetime
    finish_order: dict[int, int]


@router.post("/races", response_model=TaskTriggerResponse, status_code=202)
async def submit_race(body: RaceIn) -> TaskTriggerResponse:
    """
    Queue a confirmed race for rating.

    Ingestion is idempotent per race_id; odds are recomputed afterwards.
    """
    from podium.tasks import celery_app

    result = celery_app.send_task(
        "podium.tasks.ratings.ingest_race_task",
        args=[
            body.race_id,
            body.raced_at.isoformat(),
            {str(cid): rank for cid, rank in body.finish_order.items()},
        ],
    )
    logger.info("race_submitted", race_id=body.race_id, task_id=result.id, entrants=len(body.finish_order))

    return TaskTriggerResponse(
        task_name="ingest-race",
        task_id=result.id,
        status="submitted",
        message=f"Race {body.race_id} queued for rating.",
    )
