"""Domain models for Podium.

Competitors carry their Glicko-2 state. Each ISO week is a betting period;
users place one three-pick wager per period against the odds quoted for it,
and settled points roll up into a monthly leaderboard.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from podium.models.base import Base, JSONType, TimestampMixin


class PeriodStatus(str, Enum):
    """Betting period lifecycle states. Transitions only move forward."""
    CALIBRATION = "CALIBRATION"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    FINALIZED = "FINALIZED"


class WagerStatus(str, Enum):
    """Wager outcome states."""
    PENDING = "PENDING"
    WON = "WON"
    LOST = "LOST"
    CANCELLED = "CANCELLED"


class Position(str, Enum):
    """Podium positions a pick can target."""
    FIRST = "FIRST"
    SECOND = "SECOND"
    THIRD = "THIRD"

    @property
    def slot(self) -> int:
        """Zero-based podium slot."""
        return _POSITION_SLOT[self]


_POSITION_SLOT = {Position.FIRST: 0, Position.SECOND: 1, Position.THIRD: 2}


class Competitor(Base, TimestampMixin):
    """
    A rated competitor.

    lifetime_races is never reset and gates calibration; month_races is
    cleared by the monthly soft reset. recent_positions holds at most five
    finishing ranks, most recent first.
    """

    __tablename__ = "competitors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    # Glicko-2 state (display scale)
    rating: Mapped[float] = mapped_column(Float, default=1500.0, nullable=False)
    rd: Mapped[float] = mapped_column(Float, default=350.0, nullable=False)
    volatility: Mapped[float] = mapped_column(Float, default=0.06, nullable=False)

    lifetime_races: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    month_races: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    recent_positions: Mapped[list[int]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    form_score: Mapped[float] = mapped_column(
        Float, default=0.0, nullable=False, doc="Recency-weighted finish quality, 0..1"
    )
    last_race_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    results: Mapped[list["RaceResult"]] = relationship(
        "RaceResult", back_populates="competitor"
    )

    def __repr__(self) -> str:
        return f"<Competitor {self.name} rating={self.rating:.0f} rd={self.rd:.0f}>"


class RaceResult(Base):
    """
    One competitor's finish in one race. Immutable once ingested.
    """

    __tablename__ = "race_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    race_id: Mapped[str] = mapped_column(String(64), nullable=False)
    competitor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=False
    )
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    raced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rating_delta: Mapped[float | None] = mapped_column(
        Float, nullable=True, doc="Rating change produced by this race"
    )

    competitor: Mapped["Competitor"] = relationship(
        "Competitor", back_populates="results"
    )

    __table_args__ = (
        UniqueConstraint("race_id", "competitor_id", name="uq_race_results_race_competitor"),
        Index("idx_race_results_competitor_time", "competitor_id", "raced_at"),
    )

    def __repr__(self) -> str:
        return f"<RaceResult race={self.race_id} competitor={self.competitor_id} rank={self.rank}>"


class BettingPeriod(Base, TimestampMixin):
    """
    One ISO week of wagering.

    month/year are those of the period's Monday and select the monthly
    leaderboard the period's points roll into. At most one period may be
    OPEN; the partial unique index enforces it.
    """

    __tablename__ = "betting_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    iso_year: Mapped[int] = mapped_column(Integer, nullable=False)
    iso_week: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=PeriodStatus.OPEN.value, nullable=False,
        doc="CALIBRATION, OPEN, CLOSED, FINALIZED",
    )
    season_week_number: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False,
        doc="Sequential count of betting (non-calibration) weeks, 0 for calibration",
    )

    podium_first_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=True
    )
    podium_second_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=True
    )
    podium_third_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=True
    )
    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    wagers: Mapped[list["Wager"]] = relationship("Wager", back_populates="period")

    __table_args__ = (
        UniqueConstraint("iso_year", "iso_week", name="uq_betting_periods_iso_week"),
        Index(
            "uq_betting_periods_single_open",
            "status",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
    )

    @property
    def podium(self) -> tuple[int, int, int] | None:
        """Confirmed (first, second, third) competitor ids, if any."""
        ids = (self.podium_first_id, self.podium_second_id, self.podium_third_id)
        if any(i is None for i in ids):
            return None
        return ids

    def __repr__(self) -> str:
        return f"<BettingPeriod {self.iso_year}-W{self.iso_week:02d} {self.status}>"


class OddsQuote(Base):
    """
    Odds for one competitor in one period at one point in time.

    Quotes are append-only; the latest computed_at per (competitor, period)
    is the live quote.
    """

    __tablename__ = "odds_quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    competitor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=False
    )
    period_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("betting_periods.id"), nullable=False
    )
    odd_first: Mapped[float] = mapped_column(Float, nullable=False)
    odd_second: Mapped[float] = mapped_column(Float, nullable=False)
    odd_third: Mapped[float] = mapped_column(Float, nullable=False)
    prob_first: Mapped[float] = mapped_column(Float, nullable=False)
    prob_second: Mapped[float] = mapped_column(Float, nullable=False)
    prob_third: Mapped[float] = mapped_column(Float, nullable=False)
    quote_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONType, nullable=True,
        doc="mu, phi, g, strength, analytic win probability, trials, seed",
    )
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index(
            "idx_odds_quotes_lookup", "period_id", "competitor_id", "computed_at"
        ),
    )

    def odd_for(self, position: Position) -> float:
        """Decimal odd for the given podium position."""
        return (self.odd_first, self.odd_second, self.odd_third)[position.slot]

    def __repr__(self) -> str:
        return f"<OddsQuote competitor={self.competitor_id} period={self.period_id} 1st={self.odd_first}>"


class Wager(Base):
    """
    A user's three-pick podium prediction for a period.

    At most one per (user, period). settled flips once and is the guard
    every settlement and cancellation update filters on.
    """

    __tablename__ = "wagers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("betting_periods.id"), nullable=False
    )
    placed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    settled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=WagerStatus.PENDING.value, nullable=False
    )
    points_earned: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    period: Mapped["BettingPeriod"] = relationship("BettingPeriod", back_populates="wagers")
    picks: Mapped[list["WagerPick"]] = relationship(
        "WagerPick", back_populates="wager", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "period_id", name="uq_wagers_user_period"),
        Index(
            "idx_wagers_unsettled",
            "period_id",
            postgresql_where=text("settled = false"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Wager {self.id} user={self.user_id} period={self.period_id} {self.status}>"


class WagerPick(Base):
    """One of the three picks of a wager."""

    __tablename__ = "wager_picks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    wager_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wagers.id", ondelete="CASCADE"), nullable=False
    )
    competitor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("competitors.id"), nullable=False
    )
    position: Mapped[str] = mapped_column(String(10), nullable=False)
    odd_at_bet: Mapped[float] = mapped_column(Float, nullable=False)
    boosted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Filled in at settlement
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    final_odd: Mapped[float | None] = mapped_column(Float, nullable=True)
    used_bog_odd: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    points_earned: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    wager: Mapped["Wager"] = relationship("Wager", back_populates="picks")

    __table_args__ = (
        UniqueConstraint("wager_id", "position", name="uq_wager_picks_position"),
        UniqueConstraint("wager_id", "competitor_id", name="uq_wager_picks_competitor"),
    )

    def __repr__(self) -> str:
        return f"<WagerPick wager={self.wager_id} {self.position} competitor={self.competitor_id}>"


class BoostUsage(Base):
    """
    Records the single boost a user may apply per calendar month.
    """

    __tablename__ = "boost_usages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    wager_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wagers.id", ondelete="CASCADE"), nullable=False
    )
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "month", "year", name="uq_boost_usages_user_month"),
    )


class PeriodRanking(Base, TimestampMixin):
    """
    Monthly leaderboard row for one user.

    Counters are only ever changed by the settlement upsert, which adds
    increments in a single statement. rank uses standard competition
    ranking (1, 2, 2, 4) by total_points.
    """

    __tablename__ = "period_rankings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_points: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    wagers_placed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wagers_won: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    perfect_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    boosts_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    previous_rank: Mapped[int | None] = mapped_column(
        Integer, nullable=True, doc="Rank at the last weekly snapshot"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "month", "year", name="uq_period_rankings_user_month"),
        Index("idx_period_rankings_board", "year", "month", "total_points"),
    )

    def __repr__(self) -> str:
        return f"<PeriodRanking {self.user_id} {self.year}-{self.month:02d} pts={self.total_points} rank={self.rank}>"


class JobRun(Base):
    """
    Task execution audit log.

    Every scheduled task run is logged here for:
    1. Monitoring and alerting
    2. Debugging failures
    3. Performance tracking
    """

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, doc="'running', 'success', 'failed'"
    )
    records_processed: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONType, nullable=True
    )

    def __repr__(self) -> str:
        return f"<JobRun {self.job_name} status={self.status}>"
