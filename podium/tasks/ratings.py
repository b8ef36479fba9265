"""Rating tasks.

Race ingestion is queued by the result-capture collaborator with the
confirmed finishing order; the soft reset runs on the 1st of each month.
"""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import get_engine_config
from podium.services.events import EventPublisher
from podium.services.rating import RaceIngestionService
from podium.tasks import celery_app
from podium.tasks.jobs import run_async, run_job

logger = structlog.get_logger(__name__)


async def ingest_race(
    session: AsyncSession,
    race_id: str,
    raced_at: datetime,
    finish_order: dict[int, int],
) -> dict[str, Any]:
    """Rate one race."""
    service = RaceIngestionService(session, get_engine_config().rating)
    new_states = await service.ingest_race(race_id, raced_at, finish_order)
    return {"race_id": race_id, "records": len(new_states)}


async def monthly_soft_reset(session: AsyncSession, publisher: EventPublisher) -> dict[str, Any]:
    """Pull every rating back toward the default."""
    updated = await RaceIngestionService(session, get_engine_config().rating).apply_soft_reset()
    return {"records": updated}


@celery_app.task(bind=True, max_retries=3, soft_time_limit=60, time_limit=90, queue="ratings")
def ingest_race_task(self, race_id: str, raced_at: str, finish_order: dict[str, int]):
    """
    Queued per confirmed race.

    Args:
        race_id: External race identifier
        raced_at: ISO-8601 timestamp
        finish_order: competitor id (JSON object keys are strings) -> rank
    """
    order = {int(cid): int(rank) for cid, rank in finish_order.items()}
    when = datetime.fromisoformat(raced_at)

    async def work(session, publisher):
        return await ingest_race(session, race_id, when, order)

    stats = run_async(run_job("ingest_race", work, self))
    if stats.get("records"):
        celery_app.send_task("podium.tasks.odds.recompute_odds_task")
    return stats


@celery_app.task(bind=True, max_retries=3, soft_time_limit=120, time_limit=150, queue="ratings")
def monthly_soft_reset_task(self):
    """
    Scheduled: 1st of the month 00:05 UTC

    Not idempotent: every run pulls ratings further toward the default.
    """
    return run_async(run_job("monthly_soft_reset", monthly_soft_reset, self))
