"""Odds recomputation task.

Runs hourly and after every ingested race. Only periods in CALIBRATION
or OPEN are quoted; closed periods keep their final quotes for settlement.
"""

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import get_engine_config
from podium.services.clock import utcnow
from podium.services.events import EventPublisher
from podium.services.lifecycle import WeekLifecycleManager, odds_allowed
from podium.services.odds import OddsService
from podium.tasks import celery_app
from podium.tasks.jobs import run_async, run_job

logger = structlog.get_logger(__name__)


async def recompute_odds(
    session: AsyncSession,
    publisher: EventPublisher,
    period_id: int | None = None,
) -> dict[str, Any]:
    """Recompute odds for `period_id`, or the current period."""
    if period_id is None:
        period = await WeekLifecycleManager(session, publisher).current_period(utcnow())
        if period is None:
            logger.info("no_current_period_for_odds")
            return {"status": "skipped", "records": 0}
        if not odds_allowed(period.status):
            logger.info("odds_frozen", period_id=period.id, status=period.status)
            return {"status": "skipped", "period_id": period.id, "records": 0}
        period_id = period.id

    quotes = await OddsService(session, get_engine_config()).recompute_for_period(period_id)
    return {"period_id": period_id, "records": len(quotes)}


@celery_app.task(bind=True, max_retries=2, soft_time_limit=150, time_limit=180, queue="odds")
def recompute_odds_task(self, period_id: int | None = None):
    """
    Scheduled: Every hour at :15, and queued after each race ingestion
    Timeout: 3 minutes
    """

    async def work(session, publisher):
        return await recompute_odds(session, publisher, period_id)

    return run_async(run_job("recompute_odds", work, self))
