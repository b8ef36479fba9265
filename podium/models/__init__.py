"""Database models for Podium."""

from podium.models.base import Base, async_session_factory, engine, get_db
from podium.models.domain import (
    BettingPeriod,
    BoostUsage,
    Competitor,
    JobRun,
    OddsQuote,
    PeriodRanking,
    PeriodStatus,
    Position,
    RaceResult,
    Wager,
    WagerPick,
    WagerStatus,
)

__all__ = [
    # Base
    "Base",
    "engine",
    "async_session_factory",
    "get_db",
    # Enums
    "PeriodStatus",
    "WagerStatus",
    "Position",
    # Domain models
    "Competitor",
    "RaceResult",
    "BettingPeriod",
    "OddsQuote",
    "Wager",
    "WagerPick",
    "BoostUsage",
    "PeriodRanking",
    "JobRun",
]
