"""Race ingestion and monthly rating maintenance.

Feeds confirmed race results through the Glicko-2 engine and persists the
new rating state alongside the per-competitor counters used by the
eligibility filter (lifetime and monthly race counts, recent finishes,
form, last race time).
"""

from collections.abc import Mapping
from datetime import datetime

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config.engine import RatingParams
from podium.exceptions import DataIntegrityError
from podium.models.domain import Competitor, RaceResult
from podium.services.rating.glicko2 import RatingState, update_ratings

logger = structlog.get_logger(__name__)


def form_score(recent_positions: list[int], params: RatingParams) -> float:
    """
    Recency-weighted finish quality in [0, 1].

    Each finish maps to (max_rank - rank) / (max_rank - 1), so a win is 1
    and last place is 0, then the most recent finishes weigh most.
    """
    weights = params.form_weights[: len(recent_positions)]
    if not weights:
        return 0.0
    span = params.max_finish_rank - 1
    total = 0.0
    for rank, weight in zip(recent_positions, weights):
        quality = (params.max_finish_rank - rank) / span
        total += weight * min(max(quality, 0.0), 1.0)
    return round(total / sum(weights), 4)


class RaceIngestionService:
    """Persist race outcomes and keep competitor rating state current."""

    def __init__(self, session: AsyncSession, params: RatingParams | None = None):
        self.session = session
        self.params = params or RatingParams()

    async def ingest_race(
        self,
        race_id: str,
        raced_at: datetime,
        finish_order: Mapping[int, int],
    ) -> dict[int, RatingState]:
        """
        Rate one race and store its results.

        Args:
            race_id: External race identifier
            raced_at: When the race was run
            finish_order: competitor id -> finishing rank (1 is best)

        Returns:
            competitor id -> new rating state. Empty if the race was
            already ingested.

        Raises:
            DataIntegrityError: Unknown competitor or rank out of range.
                Nothing is persisted.
        """
        existing = await self.session.scalar(
            select(func.count(RaceResult.id)).where(RaceResult.race_id == race_id)
        )
        if existing:
            logger.info("race_already_ingested", race_id=race_id)
            return {}

        bad_ranks = {
            cid: rank for cid, rank in finish_order.items()
            if not 1 <= rank <= self.params.max_finish_rank
        }
        if bad_ranks:
            raise DataIntegrityError(f"race {race_id}: ranks out of range {bad_ranks}")

        result = await self.session.execute(
            select(Competitor).where(Competitor.id.in_(list(finish_order)))
        )
        competitors = {c.id: c for c in result.scalars().all()}

        missing = set(finish_order) - set(competitors)
        if missing:
            logger.error("race_unknown_competitors", race_id=race_id, missing=sorted(missing))
            raise DataIntegrityError(f"race {race_id}: unknown competitors {sorted(missing)}")

        priors = {
            cid: RatingState(rating=c.rating, rd=c.rd, volatility=c.volatility)
            for cid, c in competitors.items()
        }
        new_states = update_ratings(priors, finish_order, self.params)

        for cid, rank in finish_order.items():
            competitor = competitors[cid]
            state = new_states[cid]
            delta = state.rating - competitor.rating

            competitor.rating = state.rating
            competitor.rd = state.rd
            competitor.volatility = state.volatility
            competitor.lifetime_races += 1
            competitor.month_races += 1
            positions = [rank, *(competitor.recent_positions or [])]
            competitor.recent_positions = positions[: self.params.recent_positions_kept]
            competitor.form_score = form_score(competitor.recent_positions, self.params)
            competitor.last_race_at = raced_at

            self.session.add(
                RaceResult(
                    race_id=race_id,
                    competitor_id=cid,
                    rank=rank,
                    raced_at=raced_at,
                    rating_delta=round(delta, 4),
                )
            )

        await self.session.commit()

        logger.info(
            "race_ingested",
            race_id=race_id,
            competitors=len(finish_order),
        )
        return new_states

    async def apply_soft_reset(self) -> int:
        """
        Monthly soft reset for every competitor in one statement.

        Same arithmetic as glicko2.soft_reset. Lifetime counters, recent
        positions and form are left alone.

        Returns:
            Number of competitors updated
        """
        p = self.params
        bumped_rd = Competitor.rd + p.reset_rd_increase
        result = await self.session.execute(
            update(Competitor).values(
                rating=(1.0 - p.reset_pull) * Competitor.rating + p.reset_pull * p.default_rating,
                rd=case((bumped_rd > p.max_rd, p.max_rd), else_=bumped_rd),
                volatility=p.default_volatility,
                month_races=0,
            )
        )
        await self.session.commit()

        logger.info("monthly_soft_reset_applied", competitors=result.rowcount)
        return result.rowcount
