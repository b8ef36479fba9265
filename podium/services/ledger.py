"""Wager ledger.

Validates and records three-pick podium wagers. Checks run cheapest
first; the storage constraints on (user, period) and on the monthly boost
are the final word when two requests race. A rejected wager leaves
nothing behind.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from podium.exceptions import RejectionReason, WagerRejected
from podium.models.domain import (
    BettingPeriod,
    BoostUsage,
    PeriodStatus,
    Position,
    Wager,
    WagerPick,
    WagerStatus,
)
from podium.services.clock import as_utc, utcnow
from podium.services.odds.service import latest_quotes

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PickRequest:
    """One requested pick."""

    competitor_id: int
    position: Position
    boosted: bool = False


def validate_picks(picks: Sequence[PickRequest]) -> None:
    """
    Shape checks that need no database access.

    Raises:
        WagerRejected: wrong count, unknown or repeated position, repeated
            competitor, or more than one boost
    """
    if len(picks) != len(Position):
        raise WagerRejected(RejectionReason.WRONG_PICK_COUNT, f"got {len(picks)} picks")

    try:
        positions = {Position(p.position) for p in picks}
    except ValueError as e:
        raise WagerRejected(RejectionReason.INVALID_POSITION, str(e)) from e
    if len(positions) != len(picks):
        raise WagerRejected(RejectionReason.DUPLICATE_POSITION)

    if len({p.competitor_id for p in picks}) != len(picks):
        raise WagerRejected(RejectionReason.DUPLICATE_COMPETITOR)

    if sum(1 for p in picks if p.boosted) > 1:
        raise WagerRejected(RejectionReason.MULTIPLE_BOOSTS)


class WagerLedger:
    """Place and look up wagers."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def place_wager(
        self,
        user_id: str,
        period_id: int,
        picks: Sequence[PickRequest],
        placed_at: datetime | None = None,
    ) -> Wager:
        """
        Record a wager at the live odds.

        Returns:
            The stored wager with its picks

        Raises:
            WagerRejected: with the reason the wager was refused
        """
        validate_picks(picks)

        period = await self.session.get(BettingPeriod, period_id)
        if period is None:
            raise WagerRejected(RejectionReason.PERIOD_NOT_FOUND, str(period_id))
        if period.status != PeriodStatus.OPEN.value:
            raise WagerRejected(RejectionReason.PERIOD_NOT_OPEN, period.status)

        existing = await self.session.scalar(
            select(Wager.id).where(Wager.user_id == user_id, Wager.period_id == period_id)
        )
        if existing is not None:
            raise WagerRejected(RejectionReason.DUPLICATE_WAGER)

        boosted = any(p.boosted for p in picks)
        placed_at = as_utc(placed_at) or utcnow()
        if boosted and await self._boost_used(user_id, placed_at.month, placed_at.year):
            raise WagerRejected(RejectionReason.BOOST_ALREADY_USED)

        competitor_ids = [p.competitor_id for p in picks]
        quotes = await latest_quotes(self.session, period_id, competitor_ids=competitor_ids)
        missing = [cid for cid in competitor_ids if cid not in quotes]
        if missing:
            raise WagerRejected(RejectionReason.MISSING_ODDS, f"competitors {missing}")

        wager = Wager(
            user_id=user_id,
            period_id=period_id,
            placed_at=placed_at,
            settled=False,
            status=WagerStatus.PENDING.value,
        )
        for pick in picks:
            position = Position(pick.position)
            wager.picks.append(
                WagerPick(
                    competitor_id=pick.competitor_id,
                    position=position.value,
                    odd_at_bet=quotes[pick.competitor_id].odd_for(position),
                    boosted=pick.boosted,
                    used_bog_odd=False,
                )
            )
        self.session.add(wager)

        try:
            await self.session.flush()
            if boosted:
                self.session.add(
                    BoostUsage(
                        user_id=user_id,
                        month=placed_at.month,
                        year=placed_at.year,
                        wager_id=wager.id,
                        used_at=placed_at,
                    )
                )
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            reason = await self._conflict_reason(user_id, period_id)
            logger.info("wager_conflict", user_id=user_id, period_id=period_id, reason=reason.value)
            raise WagerRejected(reason)

        logger.info(
            "wager_placed",
            wager_id=wager.id,
            user_id=user_id,
            period_id=period_id,
            boosted=boosted,
        )
        return await self.get_wager(user_id, period_id)

    async def get_wager(self, user_id: str, period_id: int) -> Wager | None:
        """A user's wager for a period, with picks loaded."""
        result = await self.session.execute(
            select(Wager)
            .options(selectinload(Wager.picks))
            .where(Wager.user_id == user_id, Wager.period_id == period_id)
        )
        return result.scalar_one_or_none()

    async def list_wagers(self, user_id: str, limit: int = 10, offset: int = 0) -> list[Wager]:
        """A user's wagers, newest first."""
        result = await self.session.execute(
            select(Wager)
            .options(selectinload(Wager.picks))
            .where(Wager.user_id == user_id)
            .order_by(Wager.placed_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def _boost_used(self, user_id: str, month: int, year: int) -> bool:
        used = await self.session.scalar(
            select(BoostUsage.id).where(
                BoostUsage.user_id == user_id,
                BoostUsage.month == month,
                BoostUsage.year == year,
            )
        )
        return used is not None

    async def _conflict_reason(self, user_id: str, period_id: int) -> RejectionReason:
        """Which storage constraint a concurrent request tripped."""
        existing = await self.session.scalar(
            select(Wager.id).where(Wager.user_id == user_id, Wager.period_id == period_id)
        )
        if existing is not None:
            return RejectionReason.DUPLICATE_WAGER
        return RejectionReason.BOOST_ALREADY_USED
