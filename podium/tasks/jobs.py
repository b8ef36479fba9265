"""Shared scaffolding for scheduled jobs.

Every job runs in a fresh task session, records a JobRun row, publishes
domain events to Redis and retries transient (non-domain) failures.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import get_settings
from podium.exceptions import PodiumError
from podium.models.base import get_task_session
from podium.models.domain import JobRun
from podium.services.clock import utcnow
from podium.services.events import EventPublisher, RedisEventPublisher

logger = structlog.get_logger(__name__)

JobWork = Callable[[AsyncSession, EventPublisher], Awaitable[dict[str, Any]]]


def run_async(coro):
    """Run a coroutine on a fresh event loop inside a Celery worker."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def run_job(job_name: str, work: JobWork, task=None) -> dict[str, Any]:
    """
    Execute `work` with job bookkeeping.

    Domain errors (PodiumError) are recorded and not retried: they need
    outside action. Anything else is retried with a linear backoff while
    the task has retries left.
    """
    settings = get_settings()
    started_at = utcnow()
    job_status = "running"
    error_message = None
    stats: dict[str, Any] = {}

    async with get_task_session() as session:
        # Create job run record
        job_run = JobRun(
            job_name=job_name,
            started_at=started_at,
            status="running",
        )
        session.add(job_run)
        await session.commit()
        job_id = job_run.id

        redis_client = redis.from_url(settings.redis_url)
        publisher = RedisEventPublisher(redis_client, settings.events_channel)

        try:
            stats = await work(session, publisher)
            job_status = "success"
            logger.info(
                f"{job_name}_complete",
                stats=stats,
                duration_seconds=(utcnow() - started_at).total_seconds(),
            )

        except PodiumError as e:
            await session.rollback()
            job_status = "failed"
            error_message = str(e)
            logger.error(f"{job_name}_failed", error=str(e), error_type=type(e).__name__)

        except Exception as e:
            await session.rollback()
            job_status = "failed"
            error_message = str(e)
            logger.error(
                f"{job_name}_failed",
                error=str(e),
                task_id=task.request.id if task is not None else None,
            )

            # Retry on transient errors
            if task is not None and task.request.retries < task.max_retries:
                raise task.retry(exc=e, countdown=60 * (task.request.retries + 1))

        finally:
            await redis_client.aclose()
            # Update job run record
            await session.execute(
                update(JobRun)
                .where(JobRun.id == job_id)
                .values(
                    completed_at=utcnow(),
                    status=job_status,
                    error_message=error_message,
                    records_processed=int(stats.get("records", 0)),
                    job_metadata=stats,
                )
            )
            await session.commit()

    return stats
