"""Settlement engine.

Turns a finalized period into points:

1. Confirm the podium (period -> FINALIZED through the lifecycle)
2. Read final odds: the newest quote per competitor at or before finalization
3. Settle every unsettled wager on its own, committing each one
4. Add each wager's result to the monthly leaderboard in one upsert
5. Recompute leaderboard ranks

Each wager is claimed with a conditional UPDATE on settled = false, so
re-running settlement, or two workers running it at once, never counts a
wager twice. A wager that fails is logged, rolled back and left
unsettled for the next run.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from podium.config.engine import EngineConfig
from podium.exceptions import PeriodAlreadyFinalized, SettlementPreconditionError
from podium.models.base import insert_for
from podium.models.domain import (
    PeriodRanking,
    PeriodStatus,
    Position,
    Wager,
    WagerPick,
    WagerStatus,
)
from podium.services.clock import utcnow
from podium.services.events import (
    EventPublisher,
    LoggingEventPublisher,
    PickDetail,
    WagerSettledEvent,
)
from podium.services.lifecycle import WeekLifecycleManager
from podium.services.odds.service import latest_quotes
from podium.services.settlement.scoring import PickInput, WagerScore, score_wager

logger = structlog.get_logger(__name__)


@dataclass
class SettlementSummary:
    """Counts from one settlement run."""

    period_id: int
    settled: int = 0
    won: int = 0
    lost: int = 0
    perfect: int = 0
    failed: int = 0
    skipped: int = 0
    total_points: Decimal = Decimal("0.00")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for task results and logging."""
        return {
            "period_id": self.period_id,
            "settled": self.settled,
            "won": self.won,
            "lost": self.lost,
            "perfect": self.perfect,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_points": float(self.total_points),
        }


class SettlementEngine:
    """Settle wagers, cancel periods and maintain leaderboard ranks."""

    def __init__(
        self,
        session: AsyncSession,
        config: EngineConfig | None = None,
        publisher: EventPublisher | None = None,
    ):
        self.session = session
        self.config = config or EngineConfig()
        self.publisher = publisher or LoggingEventPublisher()
        self.lifecycle = WeekLifecycleManager(session, self.publisher)

    async def finalize_period(
        self,
        period_id: int,
        podium: Sequence[int],
        finalized_at: datetime | None = None,
    ) -> SettlementSummary:
        """
        Confirm the podium and settle the period.

        Calling again with the same podium only settles wagers that are
        still unsettled. A different podium, or a cancelled period, is
        rejected.

        Raises:
            PeriodAlreadyFinalized: finalized with another podium or cancelled
            DataIntegrityError: podium is not three distinct known competitors
            PeriodNotFound: no such period
        """
        podium = tuple(podium)
        period = await self.lifecycle.get_period(period_id)

        if period.status == PeriodStatus.FINALIZED.value:
            if period.is_cancelled or period.podium != podium:
                raise PeriodAlreadyFinalized(period_id)
            logger.info("finalize_resuming_settlement", period_id=period_id)
        else:
            await self.lifecycle.finalize(period_id, podium, finalized_at)

        return await self.settle_period(period_id)

    async def settle_period(self, period_id: int) -> SettlementSummary:
        """
        Settle every unsettled wager of a finalized period.

        Raises:
            SettlementPreconditionError: period not finalized or has no podium
        """
        period = await self.lifecycle.get_period(period_id)
        if period.status != PeriodStatus.FINALIZED.value or period.podium is None:
            raise SettlementPreconditionError(
                f"period {period_id} is {period.status} without a confirmed podium"
            )

        podium = period.podium
        month, year = period.month, period.year
        quotes = await latest_quotes(self.session, period_id, at=period.finalized_at)
        final_odds = {
            (competitor_id, position): quote.odd_for(position)
            for competitor_id, quote in quotes.items()
            for position in Position
        }

        wager_ids = (
            await self.session.execute(
                select(Wager.id)
                .where(Wager.period_id == period_id, Wager.settled.is_(False))
                .order_by(Wager.id)
            )
        ).scalars().all()

        summary = SettlementSummary(period_id=period_id)
        for wager_id in wager_ids:
            try:
                outcome = await self._settle_wager(wager_id, podium, final_odds, month, year)
                await self.session.commit()
            except Exception as e:
                await self.session.rollback()
                summary.failed += 1
                logger.error(
                    "wager_settlement_failed",
                    period_id=period_id,
                    wager_id=wager_id,
                    error=str(e),
                )
                continue

            if outcome is None:
                summary.skipped += 1
                continue

            user_id, score = outcome
            summary.settled += 1
            summary.total_points += score.points
            if score.status == WagerStatus.WON:
                summary.won += 1
            else:
                summary.lost += 1
            if score.is_perfect:
                summary.perfect += 1

            event = WagerSettledEvent(
                wager_id=wager_id,
                user_id=user_id,
                period_id=period_id,
                won=score.status == WagerStatus.WON,
                points=float(score.points),
                perfect=score.is_perfect,
                picks=[
                    PickDetail(
                        competitor_id=p.competitor_id,
                        position=p.position.value,
                        is_correct=p.is_correct,
                        points=float(p.points),
                        odd_used=p.odd_used,
                        used_bog_odd=p.used_bog_odd,
                        boosted=p.boosted,
                    )
                    for p in score.picks
                ],
            )
            # The wager is already committed; a lost event must not stop the batch
            try:
                await self.publisher.publish(event)
            except Exception as e:
                logger.error(
                    "wager_event_publish_failed",
                    period_id=period_id,
                    wager_id=wager_id,
                    error=str(e),
                )

        await self.recompute_ranks(month, year)

        logger.info("period_settled", **summary.to_dict())
        return summary

    async def _settle_wager(
        self,
        wager_id: int,
        podium: tuple[int, int, int],
        final_odds: dict[tuple[int, Position], float],
        month: int,
        year: int,
    ) -> tuple[str, WagerScore] | None:
        """Score and persist one wager. None if another run settled it first."""
        user_id = await self.session.scalar(select(Wager.user_id).where(Wager.id == wager_id))
        picks = (
            await self.session.execute(
                select(WagerPick).where(WagerPick.wager_id == wager_id).order_by(WagerPick.id)
            )
        ).scalars().all()

        score = score_wager(
            [
                PickInput(
                    competitor_id=p.competitor_id,
                    position=Position(p.position),
                    odd_at_bet=p.odd_at_bet,
                    boosted=p.boosted,
                )
                for p in picks
            ],
            podium,
            final_odds,
            self.config.scoring,
        )

        claimed = await self.session.execute(
            update(Wager)
            .where(Wager.id == wager_id, Wager.settled.is_(False))
            .values(
                settled=True,
                status=score.status.value,
                points_earned=score.points,
                settled_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            return None

        for pick, scored in zip(picks, score.picks):
            pick.is_correct = scored.is_correct
            pick.final_odd = scored.final_odd
            pick.used_bog_odd = scored.used_bog_odd
            pick.points_earned = scored.points

        await self._add_to_ranking(
            user_id,
            month,
            year,
            points=score.points,
            won=score.status == WagerStatus.WON,
            perfect=score.is_perfect,
            boosted=any(p.boosted for p in picks),
        )

        logger.debug("wager_settled", wager_id=wager_id, user_id=user_id, **score.to_dict())
        return user_id, score

    async def _add_to_ranking(
        self,
        user_id: str,
        month: int,
        year: int,
        points: Decimal,
        won: bool,
        perfect: bool,
        boosted: bool,
    ) -> None:
        """Add one settled wager to the leaderboard in a single statement."""
        insert = insert_for(self.session)
        stmt = insert(PeriodRanking).values(
            user_id=user_id,
            month=month,
            year=year,
            total_points=points,
            wagers_placed=1,
            wagers_won=int(won),
            perfect_count=int(perfect),
            boosts_used=int(boosted),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "month", "year"],
            set_={
                "total_points": PeriodRanking.total_points + stmt.excluded.total_points,
                "wagers_placed": PeriodRanking.wagers_placed + stmt.excluded.wagers_placed,
                "wagers_won": PeriodRanking.wagers_won + stmt.excluded.wagers_won,
                "perfect_count": PeriodRanking.perfect_count + stmt.excluded.perfect_count,
                "boosts_used": PeriodRanking.boosts_used + stmt.excluded.boosts_used,
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)

    async def cancel_period(self, period_id: int) -> int:
        """
        Cancel a period: FINALIZED without a podium, wagers voided.

        Safe to call again; only wagers still unsettled are touched.

        Returns:
            Number of wagers cancelled by this call

        Raises:
            PeriodAlreadyFinalized: the period already has a confirmed podium
        """
        period = await self.lifecycle.get_period(period_id)
        if period.podium is not None:
            raise PeriodAlreadyFinalized(period_id)
        if period.status != PeriodStatus.FINALIZED.value:
            await self.lifecycle.cancel(period_id)

        result = await self.session.execute(
            update(Wager)
            .where(Wager.period_id == period_id, Wager.settled.is_(False))
            .values(
                settled=True,
                status=WagerStatus.CANCELLED.value,
                points_earned=Decimal("0"),
                settled_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        logger.info("period_cancelled", period_id=period_id, wagers_cancelled=result.rowcount)
        return result.rowcount

    async def recompute_ranks(self, month: int, year: int) -> int:
        """
        Assign standard competition ranks (1, 2, 2, 4) by total points.

        Returns:
            Number of leaderboard rows ranked
        """
        better = aliased(PeriodRanking)
        rank = (
            select(func.count(better.id) + 1)
            .where(
                better.month == PeriodRanking.month,
                better.year == PeriodRanking.year,
                better.total_points > PeriodRanking.total_points,
            )
            .correlate(PeriodRanking)
            .scalar_subquery()
        )
        result = await self.session.execute(
            update(PeriodRanking)
            .where(PeriodRanking.month == month, PeriodRanking.year == year)
            .values(rank=rank)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        logger.info("ranks_recomputed", month=month, year=year, rows=result.rowcount)
        return result.rowcount

    async def snapshot_ranks(self, month: int, year: int) -> int:
        """Copy current ranks into previous_rank for trend display."""
        result = await self.session.execute(
            update(PeriodRanking)
            .where(PeriodRanking.month == month, PeriodRanking.year == year)
            .values(previous_rank=PeriodRanking.rank)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        logger.info("ranks_snapshotted", month=month, year=year, rows=result.rowcount)
        return result.rowcount

    async def leaderboard(self, month: int, year: int, limit: int = 100) -> list[PeriodRanking]:
        """Leaderboard rows for a month, best first."""
        result = await self.session.execute(
            select(PeriodRanking)
            .where(PeriodRanking.month == month, PeriodRanking.year == year)
            .order_by(PeriodRanking.total_points.desc(), PeriodRanking.user_id)
            .limit(limit)
        )
        return list(result.scalars().all())
