"""Podium determination.

When no podium is supplied from outside, the period's podium is the top
three competitors who raced during the period, ranked by conservative
score (rating - k * RD). Ties fall back to rating, then lower RD, then
more races in the period.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config.engine import PodiumParams
from podium.models.domain import BettingPeriod, Competitor, RaceResult

logger = structlog.get_logger(__name__)

PODIUM_SIZE = 3


@dataclass(frozen=True)
class PodiumCandidate:
    """A competitor who raced during the period."""

    competitor_id: int
    rating: float
    rd: float
    races: int


def determine_podium(
    candidates: list[PodiumCandidate],
    params: PodiumParams | None = None,
) -> tuple[int, int, int] | None:
    """
    Pick the podium from the period's active competitors.

    Returns:
        (first, second, third) competitor ids, or None with fewer than
        three candidates
    """
    params = params or PodiumParams()
    if len(candidates) < PODIUM_SIZE:
        logger.warning("insufficient_podium_candidates", candidates=len(candidates))
        return None

    ranked = sorted(
        candidates,
        key=lambda c: (
            -(c.rating - params.conservative_rd_factor * c.rd),
            -c.rating,
            c.rd,
            -c.races,
            c.competitor_id,
        ),
    )
    first, second, third = (c.competitor_id for c in ranked[:PODIUM_SIZE])
    return first, second, third


async def load_candidates(session: AsyncSession, period: BettingPeriod) -> list[PodiumCandidate]:
    """Competitors with at least one race inside the period's week."""
    race_count = func.count(RaceResult.id).label("races")
    result = await session.execute(
        select(Competitor.id, Competitor.rating, Competitor.rd, race_count)
        .join(RaceResult, RaceResult.competitor_id == Competitor.id)
        .where(
            RaceResult.raced_at >= period.starts_at,
            RaceResult.raced_at <= period.ends_at,
        )
        .group_by(Competitor.id, Competitor.rating, Competitor.rd)
    )
    return [
        PodiumCandidate(competitor_id=cid, rating=rating, rd=rd, races=races)
        for cid, rating, rd, races in result.all()
    ]
