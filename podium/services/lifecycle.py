"""Weekly betting period lifecycle.

Periods follow ISO weeks (Monday 00:00 UTC to Sunday 23:59:59.999999 UTC)
and only move forward:

    CALIBRATION -> FINALIZED
    OPEN        -> CLOSED -> FINALIZED
    OPEN        -> FINALIZED

A period whose Monday falls on day 1-7 of its month is a calibration week:
odds are published but wagers are refused while ratings settle after the
monthly soft reset. The very first period ever created is also a
calibration week.

Status changes are conditional UPDATEs on the current status, so two
workers racing on the same period cannot both win.
"""

from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from podium.exceptions import (
    DataIntegrityError,
    InvalidTransition,
    PeriodAlreadyFinalized,
    PeriodNotFound,
)
from podium.models.domain import BettingPeriod, Competitor, PeriodStatus
from podium.services.clock import utcnow
from podium.services.events import EventPublisher, LoggingEventPublisher, PeriodTransitionEvent

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[PeriodStatus, set[PeriodStatus]] = {
    PeriodStatus.CALIBRATION: {PeriodStatus.FINALIZED},
    PeriodStatus.OPEN: {PeriodStatus.CLOSED, PeriodStatus.FINALIZED},
    PeriodStatus.CLOSED: {PeriodStatus.FINALIZED},
    PeriodStatus.FINALIZED: set(),
}

CALIBRATION_LAST_DAY = 7


def can_transition(current: PeriodStatus | str, target: PeriodStatus | str) -> bool:
    """Whether the lifecycle allows current -> target."""
    return PeriodStatus(target) in ALLOWED_TRANSITIONS[PeriodStatus(current)]


def odds_allowed(status: PeriodStatus | str) -> bool:
    """Odds may be (re)computed only before the period closes."""
    return PeriodStatus(status) in (PeriodStatus.CALIBRATION, PeriodStatus.OPEN)


def week_bounds(day: date) -> tuple[int, int, datetime, datetime]:
    """
    ISO week containing `day`.

    Returns:
        (iso_year, iso_week, starts_at, ends_at) with UTC bounds
    """
    iso_year, iso_week, weekday = day.isocalendar()
    monday = day - timedelta(days=weekday - 1)
    starts_at = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    ends_at = datetime.combine(monday + timedelta(days=6), time.max, tzinfo=timezone.utc)
    return iso_year, iso_week, starts_at, ends_at


def is_calibration_week(monday: date) -> bool:
    """The first ISO week of a month: its Monday is on day 1-7."""
    return monday.day <= CALIBRATION_LAST_DAY


class WeekLifecycleManager:
    """Create, close and finalize betting periods."""

    def __init__(self, session: AsyncSession, publisher: EventPublisher | None = None):
        self.session = session
        self.publisher = publisher or LoggingEventPublisher()

    async def get_period(self, period_id: int) -> BettingPeriod:
        """Load a period or raise PeriodNotFound."""
        period = await self.session.get(BettingPeriod, period_id)
        if period is None:
            raise PeriodNotFound(period_id)
        return period

    async def current_period(self, now: datetime | None = None) -> BettingPeriod | None:
        """The period whose week contains `now`, whatever its status."""
        now = now or utcnow()
        result = await self.session.execute(
            select(BettingPeriod)
            .where(BettingPeriod.starts_at <= now, BettingPeriod.ends_at >= now)
            .order_by(BettingPeriod.starts_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_period(self, today: date | datetime | None = None) -> BettingPeriod:
        """
        Create the period for the ISO week containing `today`.

        Idempotent: returns the existing period if the week already has one.
        Any period still OPEN is closed first so at most one is open.
        """
        if today is None:
            today = utcnow()
        if isinstance(today, datetime):
            today = today.astimezone(timezone.utc).date()

        iso_year, iso_week, starts_at, ends_at = week_bounds(today)

        existing = await self._find_week(iso_year, iso_week)
        if existing is not None:
            logger.info("period_already_exists", period_id=existing.id, iso_year=iso_year, iso_week=iso_week)
            return existing

        stale = await self.session.execute(
            select(BettingPeriod.id).where(BettingPeriod.status == PeriodStatus.OPEN.value)
        )
        closed_ids = []
        for stale_id in stale.scalars().all():
            if await self._set_status(stale_id, PeriodStatus.OPEN, PeriodStatus.CLOSED):
                closed_ids.append(stale_id)
                logger.warning("stale_open_period_closed", period_id=stale_id)

        previous = await self.session.scalar(select(func.count(BettingPeriod.id)))
        monday = starts_at.date()
        calibration = is_calibration_week(monday) or not previous
        if calibration:
            status = PeriodStatus.CALIBRATION
            season_week = 0
        else:
            status = PeriodStatus.OPEN
            season_week = (
                await self.session.scalar(
                    select(func.count(BettingPeriod.id)).where(
                        BettingPeriod.season_week_number > 0
                    )
                )
            ) + 1

        period = BettingPeriod(
            iso_year=iso_year,
            iso_week=iso_week,
            month=monday.month,
            year=monday.year,
            starts_at=starts_at,
            ends_at=ends_at,
            status=status.value,
            season_week_number=season_week,
            is_cancelled=False,
        )
        self.session.add(period)
        try:
            await self.session.commit()
        except IntegrityError:
            # Another worker created the week first
            await self.session.rollback()
            existing = await self._find_week(iso_year, iso_week)
            if existing is None:
                raise
            return existing

        logger.info(
            "period_created",
            period_id=period.id,
            iso_year=iso_year,
            iso_week=iso_week,
            status=status.value,
            month=period.month,
        )
        for stale_id in closed_ids:
            await self._announce(
                PeriodTransitionEvent(
                    period_id=stale_id,
                    from_status=PeriodStatus.OPEN.value,
                    to_status=PeriodStatus.CLOSED.value,
                )
            )
        await self._announce(
            PeriodTransitionEvent(period_id=period.id, from_status=None, to_status=status.value)
        )
        return period

    async def close_period(self, period_id: int) -> BettingPeriod:
        """
        OPEN -> CLOSED. Any other status is left alone with a warning.
        """
        period = await self.get_period(period_id)
        changed = await self._set_status(period_id, PeriodStatus.OPEN, PeriodStatus.CLOSED)
        if not changed:
            logger.warning("close_skipped_not_open", period_id=period_id, status=period.status)
            return period

        await self.session.commit()
        await self.session.refresh(period)
        logger.info("period_closed", period_id=period_id)
        await self._announce(
            PeriodTransitionEvent(
                period_id=period_id,
                from_status=PeriodStatus.OPEN.value,
                to_status=PeriodStatus.CLOSED.value,
            )
        )
        return period

    async def finalize(
        self,
        period_id: int,
        podium: Sequence[int],
        finalized_at: datetime | None = None,
    ) -> BettingPeriod:
        """
        Record the confirmed podium and move the period to FINALIZED.

        Raises:
            DataIntegrityError: podium is not three distinct known competitors
            PeriodAlreadyFinalized: a podium was already confirmed
            PeriodNotFound: no such period
        """
        podium = tuple(podium)
        if len(podium) != 3 or len(set(podium)) != 3:
            raise DataIntegrityError(f"podium must be three distinct competitors, got {podium}")

        known = await self.session.scalar(
            select(func.count(Competitor.id)).where(Competitor.id.in_(podium))
        )
        if known != 3:
            raise DataIntegrityError(f"podium references unknown competitors: {podium}")

        return await self._finalize(
            period_id,
            finalized_at or utcnow(),
            podium_first_id=podium[0],
            podium_second_id=podium[1],
            podium_third_id=podium[2],
            is_cancelled=False,
        )

    async def cancel(self, period_id: int, finalized_at: datetime | None = None) -> BettingPeriod:
        """
        Move the period to FINALIZED without a podium.

        Raises:
            PeriodAlreadyFinalized: the period is already finalized
        """
        return await self._finalize(
            period_id,
            finalized_at or utcnow(),
            is_cancelled=True,
        )

    async def _finalize(self, period_id: int, finalized_at: datetime, **values) -> BettingPeriod:
        period = await self.get_period(period_id)
        from_status = period.status
        if from_status == PeriodStatus.FINALIZED.value:
            raise PeriodAlreadyFinalized(period_id)

        sources = [s.value for s, targets in ALLOWED_TRANSITIONS.items() if PeriodStatus.FINALIZED in targets]
        result = await self.session.execute(
            update(BettingPeriod)
            .where(BettingPeriod.id == period_id, BettingPeriod.status.in_(sources))
            .values(status=PeriodStatus.FINALIZED.value, finalized_at=finalized_at, **values)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise PeriodAlreadyFinalized(period_id)

        await self.session.commit()
        await self.session.refresh(period)

        logger.info(
            "period_finalized",
            period_id=period_id,
            from_status=from_status,
            podium=period.podium,
            cancelled=period.is_cancelled,
        )
        await self._announce(
            PeriodTransitionEvent(
                period_id=period_id,
                from_status=from_status,
                to_status=PeriodStatus.FINALIZED.value,
                podium=period.podium,
                cancelled=period.is_cancelled,
            )
        )
        return period

    async def _announce(self, event: PeriodTransitionEvent) -> None:
        """Publish a committed transition. Failures are logged only."""
        try:
            await self.publisher.publish(event)
        except Exception as e:
            logger.error(
                "period_event_publish_failed",
                period_id=event.period_id,
                to_status=event.to_status,
                error=str(e),
            )

    async def _set_status(self, period_id: int, current: PeriodStatus, target: PeriodStatus) -> bool:
        """Conditional status update. False if the period was not in `current`."""
        if not can_transition(current, target):
            raise InvalidTransition(period_id, current.value, target.value)
        result = await self.session.execute(
            update(BettingPeriod)
            .where(BettingPeriod.id == period_id, BettingPeriod.status == current.value)
            .values(status=target.value)
        )
        return result.rowcount > 0

    async def _find_week(self, iso_year: int, iso_week: int) -> BettingPeriod | None:
        result = await self.session.execute(
            select(BettingPeriod).where(
                BettingPeriod.iso_year == iso_year,
                BettingPeriod.iso_week == iso_week,
            )
        )
        return result.scalar_one_or_none()
