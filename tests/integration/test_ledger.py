"""Integration tests for wager placement.

CRITICAL TESTS:
- A wager MUST record the live odd for each pick at placement time
- A user MUST NOT place two wagers in one period
- A user MUST NOT boost twice in one calendar month
- A rejected wager MUST leave nothing behind
"""

from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from podium.exceptions import RejectionReason, WagerRejected
from podium.models.domain import BoostUsage, PeriodStatus, Position, Wager, WagerPick, WagerStatus
from podium.services.ledger import PickRequest, WagerLedger
from podium.services.lifecycle import WeekLifecycleManager
from tests.factories import add_competitors, add_period, add_quotes, utc


def podium_picks(first: int, second: int, third: int, boost: Position | None = None):
    return [
        PickRequest(first, Position.FIRST, boost == Position.FIRST),
        PickRequest(second, Position.SECOND, boost == Position.SECOND),
        PickRequest(third, Position.THIRD, boost == Position.THIRD),
    ]


@pytest.fixture
async def market(db_session):
    """An OPEN period with two rounds of quotes for four competitors."""
    a, b, c, d = await add_competitors(db_session, "Ace", "Bolt", "Comet", "Dash")
    period = await add_period(db_session, date(2026, 10, 19), PeriodStatus.OPEN)
    await add_quotes(
        db_session,
        period.id,
        {a.id: (2.0, 3.0, 4.0), b.id: (3.0, 2.5, 3.5), c.id: (5.0, 4.0, 3.0), d.id: (8.0, 6.0, 5.0)},
        utc(2026, 10, 19, 1, 0),
    )
    await add_quotes(
        db_session,
        period.id,
        {a.id: (2.2, 3.1, 4.2), b.id: (2.9, 2.4, 3.6), c.id: (5.5, 4.1, 2.9), d.id: (9.0, 6.5, 5.5)},
        utc(2026, 10, 20, 1, 0),
    )
    return SimpleNamespace(
        ids=(a.id, b.id, c.id, d.id),
        period_id=period.id,
        ledger=WagerLedger(db_session),
        session=db_session,
    )


async def count(session, model) -> int:
    return await session.scalar(select(func.count(model.id)))


class TestPlaceWager:
    """Test WagerLedger.place_wager."""

    async def test_records_latest_odds(self, market):
        """Each pick stores the newest quote for its position."""
        a, b, c, _ = market.ids
        wager = await market.ledger.place_wager("alice", market.period_id, podium_picks(a, b, c))

        assert wager.status == WagerStatus.PENDING.value
        assert not wager.settled
        odds = {p.position: p.odd_at_bet for p in wager.picks}
        assert odds == {"FIRST": 2.2, "SECOND": 2.4, "THIRD": 2.9}

    async def test_duplicate_wager_rejected(self, market):
        """One wager per user per period."""
        a, b, c, d = market.ids
        await market.ledger.place_wager("alice", market.period_id, podium_picks(a, b, c))

        with pytest.raises(WagerRejected) as exc_info:
            await market.ledger.place_wager("alice", market.period_id, podium_picks(d, c, b))

        assert exc_info.value.reason == RejectionReason.DUPLICATE_WAGER
        assert await count(market.session, Wager) == 1

    async def test_other_users_unaffected(self, market):
        """Different users may wager on the same period."""
        a, b, c, _ = market.ids
        await market.ledger.place_wager("alice", market.period_id, podium_picks(a, b, c))
        await market.ledger.place_wager("bob", market.period_id, podium_picks(a, b, c))
        assert await count(market.session, Wager) == 2

    async def test_unknown_period(self, market):
        """Missing periods are rejected with their own reason."""
        a, b, c, _ = market.ids
        with pytest.raises(WagerRejected) as exc_info:
            await market.ledger.place_wager("alice", 9999, podium_picks(a, b, c))
        assert exc_info.value.reason == RejectionReason.PERIOD_NOT_FOUND

    async def test_missing_odds_rejected_without_side_effects(self, market):
        """A competitor without a quote fails the whole wager."""
        a, b, _, _ = market.ids
        (outsider,) = await add_competitors(market.session, "Echo")

        with pytest.raises(WagerRejected) as exc_info:
            await market.ledger.place_wager(
                "alice", market.period_id, podium_picks(a, b, outsider.id, boost=Position.FIRST)
            )

        assert exc_info.value.reason == RejectionReason.MISSING_ODDS
        assert await count(market.session, Wager) == 0
        assert await count(market.session, WagerPick) == 0
        assert await count(market.session, BoostUsage) == 0

    async def test_shape_checked_first(self, market):
        """Invalid picks are rejected before any lookup."""
        a, b, _, _ = market.ids
        with pytest.raises(WagerRejected) as exc_info:
            await market.ledger.place_wager("alice", 9999, podium_picks(a, b, a))
        assert exc_info.value.reason == RejectionReason.DUPLICATE_COMPETITOR

    async def test_unknown_position_leaves_nothing(self, market):
        """An invalid position is reported with its reason code."""
        a, b, c, _ = market.ids
        picks = [PickRequest(a, "FIRST"), PickRequest(b, "SECOND"), PickRequest(c, "PODIUM")]

        with pytest.raises(WagerRejected) as exc_info:
            await market.ledger.place_wager("alice", market.period_id, picks)

        assert exc_info.value.reason == RejectionReason.INVALID_POSITION
        assert await count(market.session, Wager) == 0

    async def test_get_and_list(self, market):
        """Stored wagers can be read back with their picks."""
        a, b, c, _ = market.ids
        await market.ledger.place_wager("alice", market.period_id, podium_picks(a, b, c))

        wager = await market.ledger.get_wager("alice", market.period_id)
        wagers = await market.ledger.list_wagers("alice")

        assert len(wager.picks) == 3
        assert [w.id for w in wagers] == [wager.id]
        assert await market.ledger.get_wager("bob", market.period_id) is None


class TestPeriodStatus:
    """Wagers are accepted only while the period is OPEN."""

    @pytest.mark.parametrize(
        "status", [PeriodStatus.CALIBRATION, PeriodStatus.CLOSED, PeriodStatus.FINALIZED]
    )
    async def test_rejected_unless_open(self, db_session, status):
        a, b, c = await add_competitors(db_session, "Ace", "Bolt", "Comet")
        period = await add_period(db_session, date(2026, 10, 5), status, season_week_number=0)
        await add_quotes(
            db_session,
            period.id,
            {a.id: (2.0, 3.0, 4.0), b.id: (3.0, 2.5, 3.5), c.id: (5.0, 4.0, 3.0)},
            utc(2026, 10, 5, 1, 0),
        )

        with pytest.raises(WagerRejected) as exc_info:
            await WagerLedger(db_session).place_wager("alice", period.id, podium_picks(a.id, b.id, c.id))

        assert exc_info.value.reason == RejectionReason.PERIOD_NOT_OPEN


class TestMonthlyBoost:
    """One boost per user per calendar month of placement."""

    async def open_next(self, market, monday: date, week_number: int) -> int:
        """Close the current period and open the week starting `monday`, priced."""
        a, b, c, d = market.ids
        await WeekLifecycleManager(market.session).close_period(market.period_id)
        period = await add_period(market.session, monday, PeriodStatus.OPEN, week_number)
        await add_quotes(
            market.session,
            period.id,
            {a: (2.0, 3.0, 4.0), b: (3.0, 2.5, 3.5), c: (5.0, 4.0, 3.0), d: (8.0, 6.0, 5.0)},
            utc(monday.year, monday.month, monday.day, 1, 0),
        )
        return period.id

    async def test_boost_recorded(self, market):
        """A boosted wager records the boost against its placement month."""
        a, b, c, _ = market.ids
        wager = await market.ledger.place_wager(
            "alice",
            market.period_id,
            podium_picks(a, b, c, boost=Position.SECOND),
            placed_at=utc(2026, 10, 20, 9, 0),
        )

        usage = await market.session.scalar(select(BoostUsage).where(BoostUsage.user_id == "alice"))
        assert usage.wager_id == wager.id
        assert (usage.month, usage.year) == (10, 2026)
        assert [p.boosted for p in sorted(wager.picks, key=lambda p: Position(p.position).slot)] == [
            False, True, False,
        ]

    async def test_second_boost_same_month_rejected(self, market):
        """A later period in the same month cannot be boosted again."""
        a, b, c, d = market.ids
        await market.ledger.place_wager(
            "alice",
            market.period_id,
            podium_picks(a, b, c, boost=Position.FIRST),
            placed_at=utc(2026, 10, 20, 9, 0),
        )
        next_week = await self.open_next(market, date(2026, 10, 26), 2)

        with pytest.raises(WagerRejected) as exc_info:
            await market.ledger.place_wager(
                "alice",
                next_week,
                podium_picks(d, c, b, boost=Position.THIRD),
                placed_at=utc(2026, 10, 27, 9, 0),
            )
        assert exc_info.value.reason == RejectionReason.BOOST_ALREADY_USED

        # Unboosted is still fine
        wager = await market.ledger.place_wager(
            "alice", next_week, podium_picks(d, c, b), placed_at=utc(2026, 10, 27, 9, 0)
        )
        assert wager is not None
        assert await count(market.session, BoostUsage) == 1

    async def test_boost_available_next_month(self, market):
        """The allowance resets with the calendar month."""
        a, b, c, _ = market.ids
        await market.ledger.place_wager(
            "alice",
            market.period_id,
            podium_picks(a, b, c, boost=Position.FIRST),
            placed_at=utc(2026, 10, 20, 9, 0),
        )
        november = await self.open_next(market, date(2026, 11, 9), 3)

        wager = await market.ledger.place_wager(
            "alice",
            november,
            podium_picks(a, b, c, boost=Position.FIRST),
            placed_at=utc(2026, 11, 10, 9, 0),
        )
        assert any(p.boosted for p in wager.picks)
        assert await count(market.session, BoostUsage) == 2

    async def test_week_spanning_months_uses_placement_date(self, market):
        """
        A boost placed on Sunday 1 Nov in the week of Monday 26 Oct counts
        for November, so a second November boost is refused.
        """
        a, b, c, d = market.ids
        spanning = await self.open_next(market, date(2026, 10, 26), 2)
        await market.ledger.place_wager(
            "alice",
            spanning,
            podium_picks(a, b, c, boost=Position.FIRST),
            placed_at=utc(2026, 11, 1, 12, 0),
        )

        usage = await market.session.scalar(select(BoostUsage).where(BoostUsage.user_id == "alice"))
        assert (usage.month, usage.year) == (11, 2026)

        market.period_id = spanning
        november = await self.open_next(market, date(2026, 11, 9), 3)
        with pytest.raises(WagerRejected) as exc_info:
            await market.ledger.place_wager(
                "alice",
                november,
                podium_picks(d, c, b, boost=Position.SECOND),
                placed_at=utc(2026, 11, 10, 9, 0),
            )
        assert exc_info.value.reason == RejectionReason.BOOST_ALREADY_USED
