"""Celery tasks for Podium.

This module configures Celery and registers all periodic tasks.
"""

from celery import Celery
from celery.schedules import crontab

from podium.config import get_settings

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "podium",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "podium.tasks.lifecycle",
        "podium.tasks.odds",
        "podium.tasks.ratings",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task behavior
    task_track_started=True,
    task_time_limit=600,  # 10 minute hard limit
    task_soft_time_limit=540,  # 9 minute soft limit
    # Result expiration
    result_expires=3600,  # 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

# Beat schedule for periodic tasks (all times UTC)
celery_app.conf.beat_schedule = {
    # New betting period - Monday 00:00
    "create-period": {
        "task": "podium.tasks.lifecycle.create_period_task",
        "schedule": crontab(minute=0, hour=0, day_of_week="mon"),
        "options": {"expires": 3600},
    },
    # Odds refresh - every hour at :15
    "recompute-odds": {
        "task": "podium.tasks.odds.recompute_odds_task",
        "schedule": crontab(minute=15),
        "options": {"expires": 3300},
    },
    # Stop accepting wagers - Sunday 23:50
    "close-period": {
        "task": "podium.tasks.lifecycle.close_period_task",
        "schedule": crontab(minute=50, hour=23, day_of_week="sun"),
        "options": {"expires": 240},
    },
    # Confirm podium and settle - Sunday 23:55
    "finalize-period": {
        "task": "podium.tasks.lifecycle.finalize_period_task",
        "schedule": crontab(minute=55, hour=23, day_of_week="sun"),
        "options": {"expires": 120},
    },
    # Leaderboard ranks - Sunday 23:58
    "recompute-rankings": {
        "task": "podium.tasks.lifecycle.recompute_rankings_task",
        "schedule": crontab(minute=58, hour=23, day_of_week="sun"),
        "options": {"expires": 60},
    },
    # Rank trend snapshot - Sunday 23:59, after ranks are recomputed
    "snapshot-rankings": {
        "task": "podium.tasks.lifecycle.snapshot_rankings_task",
        "schedule": crontab(minute=59, hour=23, day_of_week="sun"),
        "options": {"expires": 3600},
    },
    # Monthly soft reset - 1st of the month 00:05
    "monthly-soft-reset": {
        "task": "podium.tasks.ratings.monthly_soft_reset_task",
        "schedule": crontab(minute=5, hour=0, day_of_month=1),
        "options": {"expires": 3600},
    },
}
