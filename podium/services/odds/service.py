"""Odds recomputation and quote lookup.

Loads the rated field for a period, keeps only eligible competitors,
simulates the podium and appends one quote per competitor. The newest
quote per (competitor, period) is the live one; settlement reads the
newest quote at or before the finalization time as the final odd.
"""

from collections import defaultdict
from datetime import datetime, timedelta

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config.engine import EngineConfig
from podium.exceptions import OddsFrozen, PeriodNotFound
from podium.models.domain import BettingPeriod, Competitor, OddsQuote, RaceResult
from podium.services.clock import as_utc, utcnow
from podium.services.eligibility import EligibilityResult, check_eligibility
from podium.services.lifecycle import odds_allowed
from podium.services.odds.simulator import Entrant, OddsSimulator, PositionQuote

logger = structlog.get_logger(__name__)


async def latest_quotes(
    session: AsyncSession,
    period_id: int,
    at: datetime | None = None,
    competitor_ids: list[int] | None = None,
) -> dict[int, OddsQuote]:
    """
    Newest quote per competitor for a period.

    Args:
        session: Database session
        period_id: Period to look up
        at: Only consider quotes computed at or before this time
        competitor_ids: Restrict to these competitors

    Returns:
        competitor id -> OddsQuote
    """
    conditions = [OddsQuote.period_id == period_id]
    if at is not None:
        conditions.append(OddsQuote.computed_at <= at)
    if competitor_ids is not None:
        conditions.append(OddsQuote.competitor_id.in_(competitor_ids))

    newest = (
        select(
            OddsQuote.competitor_id,
            func.max(OddsQuote.computed_at).label("computed_at"),
        )
        .where(*conditions)
        .group_by(OddsQuote.competitor_id)
        .subquery()
    )
    result = await session.execute(
        select(OddsQuote)
        .join(
            newest,
            and_(
                OddsQuote.competitor_id == newest.c.competitor_id,
                OddsQuote.computed_at == newest.c.computed_at,
            ),
        )
        .where(OddsQuote.period_id == period_id)
        .order_by(OddsQuote.id)
    )
    # Later rows win if one recompute stamped the same time twice
    return {quote.competitor_id: quote for quote in result.scalars().all()}


class OddsService:
    """Recompute and persist podium odds for a period."""

    def __init__(self, session: AsyncSession, config: EngineConfig | None = None):
        self.session = session
        self.config = config or EngineConfig()
        self.simulator = OddsSimulator(self.config.odds)

    async def eligibility_for_period(
        self,
        period: BettingPeriod,
        now: datetime,
    ) -> dict[int, tuple[Competitor, EligibilityResult]]:
        """Eligibility of every competitor as of `now`."""
        rules = self.config.eligibility
        competitors = (await self.session.execute(select(Competitor).order_by(Competitor.id))).scalars().all()

        window_start = now - timedelta(days=rules.recent_window_days)
        earliest = min(window_start, as_utc(period.starts_at))
        races = await self.session.execute(
            select(RaceResult.competitor_id, RaceResult.raced_at).where(
                RaceResult.raced_at >= earliest
            )
        )
        race_dates: dict[int, list[datetime]] = defaultdict(list)
        for competitor_id, raced_at in races.all():
            race_dates[competitor_id].append(as_utc(raced_at))

        starts_at, ends_at = as_utc(period.starts_at), as_utc(period.ends_at)
        eligibility = {}
        for competitor in competitors:
            dates = race_dates.get(competitor.id, [])
            this_period = sum(1 for d in dates if starts_at <= d <= ends_at)
            eligibility[competitor.id] = (
                competitor,
                check_eligibility(
                    competitor.lifetime_races,
                    dates,
                    now,
                    rules,
                    races_this_period=this_period,
                ),
            )
        return eligibility

    async def recompute_for_period(
        self,
        period_id: int,
        now: datetime | None = None,
        seed: int | None = None,
    ) -> list[PositionQuote]:
        """
        Quote every eligible competitor and store the quotes.

        Raises:
            PeriodNotFound: no such period
            OddsFrozen: the period is CLOSED or FINALIZED
        """
        now = as_utc(now) or utcnow()
        period = await self.session.get(BettingPeriod, period_id)
        if period is None:
            raise PeriodNotFound(period_id)
        if not odds_allowed(period.status):
            raise OddsFrozen(period_id, period.status)

        eligibility = await self.eligibility_for_period(period, now)
        entrants = [
            Entrant(competitor_id=c.id, rating=c.rating, rd=c.rd)
            for c, result in eligibility.values()
            if result.eligible
        ]
        excluded = {
            cid: result.reason.value
            for cid, (_, result) in eligibility.items()
            if not result.eligible
        }

        if not entrants:
            logger.warning("no_eligible_competitors", period_id=period_id, excluded=len(excluded))
            return []

        quotes = self.simulator.compute_odds(entrants, seed=seed)
        for quote in quotes:
            self.session.add(
                OddsQuote(
                    competitor_id=quote.competitor_id,
                    period_id=period_id,
                    odd_first=quote.odd_first,
                    odd_second=quote.odd_second,
                    odd_third=quote.odd_third,
                    prob_first=quote.prob_first,
                    prob_second=quote.prob_second,
                    prob_third=quote.prob_third,
                    quote_metadata=quote.metadata,
                    computed_at=now,
                )
            )
        await self.session.commit()

        logger.info(
            "odds_recomputed",
            period_id=period_id,
            eligible=len(entrants),
            excluded=len(excluded),
            avg_odd_first=round(sum(q.odd_first for q in quotes) / len(quotes), 2),
        )
        return quotes
