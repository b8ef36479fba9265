"""Test data builders shared by the integration tests."""

from datetime import date, datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from podium.models.domain import (
    BettingPeriod,
    Competitor,
    OddsQuote,
    PeriodStatus,
)
from podium.services.events import EventPublisher
from podium.services.lifecycle import week_bounds


def utc(*args) -> datetime:
    """Shorthand for an aware UTC datetime."""
    return datetime(*args, tzinfo=timezone.utc)


class CollectingPublisher(EventPublisher):
    """Keeps published events in memory."""

    def __init__(self):
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)

    def named(self, name: str) -> list:
        return [e for e in self.events if e.name == name]


async def add_competitors(session: AsyncSession, *names: str, **fields) -> list[Competitor]:
    """Insert competitors with the given names and shared field values."""
    competitors = [Competitor(name=name, **fields) for name in names]
    session.add_all(competitors)
    await session.commit()
    return competitors


async def add_period(
    session: AsyncSession,
    day: date,
    status: PeriodStatus = PeriodStatus.OPEN,
    season_week_number: int = 1,
) -> BettingPeriod:
    """Insert the period for the ISO week containing `day`."""
    iso_year, iso_week, starts_at, ends_at = week_bounds(day)
    period = BettingPeriod(
        iso_year=iso_year,
        iso_week=iso_week,
        month=starts_at.month,
        year=starts_at.year,
        starts_at=starts_at,
        ends_at=ends_at,
        status=status.value,
        season_week_number=season_week_number,
        is_cancelled=False,
    )
    session.add(period)
    await session.commit()
    return period


async def add_quotes(
    session: AsyncSession,
    period_id: int,
    odds: dict[int, tuple[float, float, float]],
    computed_at: datetime,
) -> None:
    """Insert one quote round: competitor id -> (first, second, third) odds."""
    for competitor_id, (first, second, third) in odds.items():
        session.add(
            OddsQuote(
                competitor_id=competitor_id,
                period_id=period_id,
                odd_first=first,
                odd_second=second,
                odd_third=third,
                prob_first=round(1 / first, 6),
                prob_second=round(1 / second, 6),
                prob_third=round(1 / third, 6),
                quote_metadata={"source": "test"},
                computed_at=computed_at,
            )
        )
    await session.commit()
