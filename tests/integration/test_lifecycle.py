"""Integration tests for the weekly period lifecycle."""

from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from podium.exceptions import DataIntegrityError, InvalidTransition, PeriodAlreadyFinalized, PeriodNotFound
from podium.models.domain import BettingPeriod, PeriodStatus
from podium.services.lifecycle import WeekLifecycleManager
from tests.factories import add_competitors, add_period, utc


class UnreachablePublisher:
    """Event sink that is always down."""

    async def publish(self, event) -> None:
        raise ConnectionError("event broker unreachable")


class TestCreatePeriod:
    """Test WeekLifecycleManager.create_period."""

    @pytest.fixture(autouse=True)
    def _manager(self, db_session, publisher):
        self.session = db_session
        self.publisher = publisher
        self.manager = WeekLifecycleManager(db_session, publisher)

    async def test_first_period_is_calibration(self):
        """The first period ever created calibrates, even mid-month."""
        period = await self.manager.create_period(date(2026, 10, 14))

        assert period.status == PeriodStatus.CALIBRATION.value
        assert period.season_week_number == 0
        assert (period.iso_year, period.iso_week) == (2026, 42)
        assert (period.month, period.year) == (10, 2026)

    async def test_mid_month_week_opens(self):
        """After the first period, a mid-month week opens for wagers."""
        await self.manager.create_period(date(2026, 10, 14))
        period = await self.manager.create_period(date(2026, 10, 19))

        assert period.status == PeriodStatus.OPEN.value
        assert period.season_week_number == 1

    async def test_first_week_of_month_calibrates(self):
        """A Monday on day 1-7 gives a calibration week."""
        await self.manager.create_period(date(2026, 10, 19))
        period = await self.manager.create_period(date(2026, 11, 2))
        assert period.status == PeriodStatus.CALIBRATION.value
        assert period.season_week_number == 0

    async def test_idempotent_per_week(self):
        """Creating the same week twice returns the same period."""
        first = await self.manager.create_period(date(2026, 10, 19))
        again = await self.manager.create_period(date(2026, 10, 22))

        assert again.id == first.id
        count = await self.session.scalar(select(func.count(BettingPeriod.id)))
        assert count == 1

    async def test_at_most_one_open_period(self):
        """A new week closes a period left OPEN."""
        await self.manager.create_period(date(2026, 10, 5))
        week_one = await self.manager.create_period(date(2026, 10, 12))
        week_two = await self.manager.create_period(date(2026, 10, 19))

        open_count = await self.session.scalar(
            select(func.count(BettingPeriod.id)).where(
                BettingPeriod.status == PeriodStatus.OPEN.value
            )
        )
        await self.session.refresh(week_one)
        assert open_count == 1
        assert week_one.status == PeriodStatus.CLOSED.value
        assert week_two.status == PeriodStatus.OPEN.value
        assert week_two.season_week_number == 2

    async def test_stale_close_is_announced(self):
        """Closing a period left OPEN publishes its transition too."""
        await self.manager.create_period(date(2026, 10, 5))
        week_one = await self.manager.create_period(date(2026, 10, 12))
        await self.manager.create_period(date(2026, 10, 19))

        closes = [e for e in self.publisher.named("period.transition") if e.to_status == "CLOSED"]
        assert len(closes) == 1
        assert closes[0].period_id == week_one.id
        assert closes[0].from_status == "OPEN"

    async def test_default_publisher(self):
        """Transitions complete when events only go to the log."""
        manager = WeekLifecycleManager(self.session)
        await manager.create_period(date(2026, 10, 12))
        period = await manager.create_period(date(2026, 10, 19))

        closed = await manager.close_period(period.id)
        assert closed.status == PeriodStatus.CLOSED.value

        cancelled = await manager.cancel(period.id)
        assert cancelled.is_cancelled

    async def test_publish_failure_keeps_transition(self):
        """A failing event sink does not undo or interrupt a committed change."""
        manager = WeekLifecycleManager(self.session, UnreachablePublisher())
        await manager.create_period(date(2026, 10, 12))
        period = await manager.create_period(date(2026, 10, 19))

        closed = await manager.close_period(period.id)

        assert closed.status == PeriodStatus.CLOSED.value

    async def test_publishes_creation_event(self):
        """Creation is announced with no previous status."""
        period = await self.manager.create_period(date(2026, 10, 19))
        events = self.publisher.named("period.transition")

        assert len(events) == 1
        assert events[0].period_id == period.id
        assert events[0].from_status is None
        assert events[0].to_status == period.status

    async def test_current_period(self):
        """current_period finds the week containing a time."""
        period = await self.manager.create_period(date(2026, 10, 19))

        found = await self.manager.current_period(utc(2026, 10, 25, 23, 50))
        missing = await self.manager.current_period(utc(2026, 10, 26, 0, 1))

        assert found.id == period.id
        assert missing is None


@pytest.fixture
async def seeded(db_session, publisher):
    """Four competitors and an OPEN period for the week of 19 Oct 2026."""
    competitors = await add_competitors(db_session, "Ace", "Bolt", "Comet", "Dash")
    period = await add_period(db_session, date(2026, 10, 19), PeriodStatus.OPEN)
    return SimpleNamespace(
        manager=WeekLifecycleManager(db_session, publisher),
        publisher=publisher,
        podium=tuple(c.id for c in competitors[:3]),
        period_id=period.id,
    )


class TestCloseAndFinalize:
    """Test closing and finalizing a period."""

    async def test_close_open_period(self, seeded):
        """OPEN moves to CLOSED."""
        period = await seeded.manager.close_period(seeded.period_id)
        assert period.status == PeriodStatus.CLOSED.value
        assert seeded.publisher.named("period.transition")[-1].to_status == "CLOSED"

    async def test_close_is_noop_when_not_open(self, seeded):
        """Closing twice leaves the period CLOSED without a second event."""
        await seeded.manager.close_period(seeded.period_id)
        period = await seeded.manager.close_period(seeded.period_id)

        assert period.status == PeriodStatus.CLOSED.value
        assert len(seeded.publisher.named("period.transition")) == 1

    async def test_close_unknown_period(self, seeded):
        """Missing periods raise PeriodNotFound."""
        with pytest.raises(PeriodNotFound):
            await seeded.manager.close_period(9999)

    async def test_finalize_records_podium(self, seeded):
        """FINALIZED with the podium and a finalization time."""
        await seeded.manager.close_period(seeded.period_id)
        period = await seeded.manager.finalize(
            seeded.period_id, seeded.podium, utc(2026, 10, 25, 23, 55)
        )

        assert period.status == PeriodStatus.FINALIZED.value
        assert period.podium == seeded.podium
        assert period.finalized_at is not None
        assert not period.is_cancelled

        event = seeded.publisher.named("period.transition")[-1]
        assert event.from_status == "CLOSED"
        assert event.podium == seeded.podium

    async def test_finalize_from_open(self, seeded):
        """OPEN can be finalized directly."""
        period = await seeded.manager.finalize(seeded.period_id, seeded.podium)
        assert period.status == PeriodStatus.FINALIZED.value

    async def test_finalize_twice_rejected(self, seeded):
        """A second podium is refused."""
        await seeded.manager.finalize(seeded.period_id, seeded.podium)
        with pytest.raises(PeriodAlreadyFinalized):
            await seeded.manager.finalize(seeded.period_id, tuple(reversed(seeded.podium)))

    async def test_finalize_requires_distinct_podium(self, seeded):
        """Repeated competitors are a data error."""
        first, _, third = seeded.podium
        with pytest.raises(DataIntegrityError):
            await seeded.manager.finalize(seeded.period_id, (first, first, third))

    async def test_finalize_requires_known_competitors(self, seeded):
        """Unknown ids are a data error and the period is untouched."""
        first, second, _ = seeded.podium
        with pytest.raises(DataIntegrityError):
            await seeded.manager.finalize(seeded.period_id, (first, second, 9999))

        period = await seeded.manager.get_period(seeded.period_id)
        assert period.status == PeriodStatus.OPEN.value

    async def test_cancel(self, seeded):
        """Cancel finalizes without a podium."""
        period = await seeded.manager.cancel(seeded.period_id)

        assert period.status == PeriodStatus.FINALIZED.value
        assert period.is_cancelled
        assert period.podium is None

    async def test_backward_transition_rejected(self, seeded):
        """The status machine refuses CLOSED -> OPEN."""
        with pytest.raises(InvalidTransition):
            await seeded.manager._set_status(seeded.period_id, PeriodStatus.CLOSED, PeriodStatus.OPEN)
