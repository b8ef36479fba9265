"""Weekly period lifecycle tasks.

Monday 00:00   create the week's period and publish opening odds
Sunday 23:50   close the open period
Sunday 23:55   determine the podium, finalize and settle (or cancel)
Sunday 23:58   recompute the monthly leaderboard ranks
Sunday 23:59   snapshot ranks for trend display
"""

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import get_engine_config
from podium.models.domain import BettingPeriod, PeriodStatus
from podium.services.clock import utcnow
from podium.services.events import EventPublisher
from podium.services.lifecycle import WeekLifecycleManager
from podium.services.odds import OddsService
from podium.services.settlement import SettlementEngine
from podium.services.settlement.podium import determine_podium, load_candidates
from podium.tasks import celery_app
from podium.tasks.jobs import run_async, run_job

logger = structlog.get_logger(__name__)


async def create_period(session: AsyncSession, publisher: EventPublisher) -> dict[str, Any]:
    """Create this week's period, then compute its opening odds."""
    lifecycle = WeekLifecycleManager(session, publisher)
    period = await lifecycle.create_period(utcnow())
    stats: dict[str, Any] = {"period_id": period.id, "status": period.status, "quotes": 0}

    # The period stands even if the first odds run fails; the hourly
    # recompute picks it up
    try:
        quotes = await OddsService(session, get_engine_config()).recompute_for_period(period.id)
        stats["quotes"] = len(quotes)
    except Exception as e:
        await session.rollback()
        logger.error("initial_odds_failed", period_id=period.id, error=str(e))

    stats["records"] = 1
    return stats


async def close_period(session: AsyncSession, publisher: EventPublisher) -> dict[str, Any]:
    """Close the current period."""
    lifecycle = WeekLifecycleManager(session, publisher)
    period = await lifecycle.current_period(utcnow())
    if period is None:
        logger.warning("no_current_period_to_close")
        return {"status": "skipped", "records": 0}

    period = await lifecycle.close_period(period.id)
    return {"period_id": period.id, "status": period.status, "records": 1}


async def finalize_period(session: AsyncSession, publisher: EventPublisher) -> dict[str, Any]:
    """
    Determine the podium from the week's races and settle.

    With fewer than three active competitors the period is cancelled
    instead and every wager is voided.
    """
    config = get_engine_config()
    lifecycle = WeekLifecycleManager(session, publisher)
    period = await lifecycle.current_period(utcnow())
    if period is None:
        logger.warning("no_current_period_to_finalize")
        return {"status": "skipped", "records": 0}
    engine = SettlementEngine(session, config, publisher)

    if period.status == PeriodStatus.FINALIZED.value:
        # Re-run: only wagers a previous run failed on are left
        logger.info("period_already_finalized", period_id=period.id, cancelled=period.is_cancelled)
        if period.is_cancelled:
            cancelled = await engine.cancel_period(period.id)
            return {"period_id": period.id, "cancelled": True, "records": cancelled}
        summary = await engine.settle_period(period.id)
        return {**summary.to_dict(), "records": summary.settled}

    candidates = await load_candidates(session, period)
    podium = determine_podium(candidates, config.podium)

    if podium is None:
        cancelled = await engine.cancel_period(period.id)
        return {"period_id": period.id, "cancelled": True, "records": cancelled}

    summary = await engine.finalize_period(period.id, podium)
    return {**summary.to_dict(), "podium": list(podium), "records": summary.settled}


async def _board_month(session: AsyncSession) -> tuple[int, int]:
    """Month of the current period, or the calendar month without one."""
    period: BettingPeriod | None = await WeekLifecycleManager(session).current_period(utcnow())
    if period is not None:
        return period.month, period.year
    now = utcnow()
    return now.month, now.year


async def recompute_rankings(session: AsyncSession, publisher: EventPublisher) -> dict[str, Any]:
    """Recompute ranks for the current period's month."""
    month, year = await _board_month(session)
    rows = await SettlementEngine(session, get_engine_config(), publisher).recompute_ranks(month, year)
    return {"month": month, "year": year, "records": rows}


async def snapshot_rankings(session: AsyncSession, publisher: EventPublisher) -> dict[str, Any]:
    """Store the current ranks as previous_rank."""
    month, year = await _board_month(session)
    rows = await SettlementEngine(session, get_engine_config(), publisher).snapshot_ranks(month, year)
    return {"month": month, "year": year, "records": rows}


@celery_app.task(bind=True, max_retries=3, soft_time_limit=240, time_limit=300, queue="periods")
def create_period_task(self):
    """
    Scheduled: Monday 00:00 UTC

    Idempotent per ISO week.
    """
    return run_async(run_job("create_period", create_period, self))


@celery_app.task(bind=True, max_retries=3, soft_time_limit=120, time_limit=150, queue="periods")
def close_period_task(self):
    """
    Scheduled: Sunday 23:50 UTC

    No-op (with a warning) when the period is not OPEN.
    """
    return run_async(run_job("close_period", close_period, self))


@celery_app.task(bind=True, max_retries=3, soft_time_limit=150, time_limit=180, queue="periods")
def finalize_period_task(self):
    """
    Scheduled: Sunday 23:55 UTC

    Safe to re-run: settlement only touches unsettled wagers.
    """
    return run_async(run_job("finalize_period", finalize_period, self))


@celery_app.task(bind=True, max_retries=3, soft_time_limit=60, time_limit=90, queue="periods")
def recompute_rankings_task(self):
    """Scheduled: Sunday 23:58 UTC"""
    return run_async(run_job("recompute_rankings", recompute_rankings, self))


@celery_app.task(bind=True, max_retries=3, soft_time_limit=60, time_limit=90, queue="periods")
def snapshot_rankings_task(self):
    """Scheduled: Sunday 23:59 UTC"""
    return run_async(run_job("snapshot_rankings", snapshot_rankings, self))
