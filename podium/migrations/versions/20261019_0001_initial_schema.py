"""Initial schema for Podium.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

This migration creates all the core tables for the Podium game:
- Competitors with their Glicko-2 state, and per-race RaceResults
- BettingPeriods (one per ISO week, at most one OPEN)
- OddsQuotes, append-only, latest per competitor is live
- Wagers and WagerPicks, BoostUsages (one boost per user per month)
- PeriodRankings for the monthly leaderboard
- JobRuns for task audit logging

CRITICAL: settlement and the single-open-period rule depend on the
unique constraints and the partial unique index created here.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Competitors table
    op.create_table(
        "competitors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False, server_default="1500"),
        sa.Column("rd", sa.Float(), nullable=False, server_default="350"),
        sa.Column("volatility", sa.Float(), nullable=False, server_default="0.06"),
        sa.Column("lifetime_races", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("month_races", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "recent_positions",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("form_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_race_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    # Race results table
    op.create_table(
        "race_results",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("race_id", sa.String(length=64), nullable=False),
        sa.Column("competitor_id", sa.Integer(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("raced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("rating_delta", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("race_id", "competitor_id", name="uq_race_results_race_competitor"),
    )
    op.create_index(
        "idx_race_results_competitor_time", "race_results", ["competitor_id", "raced_at"]
    )

    # Betting periods table
    op.create_table(
        "betting_periods",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("iso_year", sa.Integer(), nullable=False),
        sa.Column("iso_week", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("season_week_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("podium_first_id", sa.Integer(), nullable=True),
        sa.Column("podium_second_id", sa.Integer(), nullable=True),
        sa.Column("podium_third_id", sa.Integer(), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["podium_first_id"], ["competitors.id"]),
        sa.ForeignKeyConstraint(["podium_second_id"], ["competitors.id"]),
        sa.ForeignKeyConstraint(["podium_third_id"], ["competitors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("iso_year", "iso_week", name="uq_betting_periods_iso_week"),
    )
    # At most one OPEN period
    op.create_index(
        "uq_betting_periods_single_open",
        "betting_periods",
        ["status"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    # Odds quotes table (append-only)
    op.create_table(
        "odds_quotes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("competitor_id", sa.Integer(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("odd_first", sa.Float(), nullable=False),
        sa.Column("odd_second", sa.Float(), nullable=False),
        sa.Column("odd_third", sa.Float(), nullable=False),
        sa.Column("prob_first", sa.Float(), nullable=False),
        sa.Column("prob_second", sa.Float(), nullable=False),
        sa.Column("prob_third", sa.Float(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitors.id"]),
        sa.ForeignKeyConstraint(["period_id"], ["betting_periods.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_odds_quotes_lookup", "odds_quotes", ["period_id", "competitor_id", "computed_at"]
    )

    # Wagers table
    op.create_table(
        "wagers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("placed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("settled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("points_earned", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["period_id"], ["betting_periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "period_id", name="uq_wagers_user_period"),
    )
    op.create_index(
        "idx_wagers_unsettled",
        "wagers",
        ["period_id"],
        postgresql_where=sa.text("settled = false"),
    )

    # Wager picks table
    op.create_table(
        "wager_picks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("wager_id", sa.Integer(), nullable=False),
        sa.Column("competitor_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.String(length=10), nullable=False),
        sa.Column("odd_at_bet", sa.Float(), nullable=False),
        sa.Column("boosted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_correct", sa.Boolean(), nullable=True),
        sa.Column("final_odd", sa.Float(), nullable=True),
        sa.Column("used_bog_odd", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("points_earned", sa.Numeric(10, 2), nullable=True),
        sa.ForeignKeyConstraint(["wager_id"], ["wagers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("wager_id", "position", name="uq_wager_picks_position"),
        sa.UniqueConstraint("wager_id", "competitor_id", name="uq_wager_picks_competitor"),
    )

    # Boost usages table
    op.create_table(
        "boost_usages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("wager_id", sa.Integer(), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["wager_id"], ["wagers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "month", "year", name="uq_boost_usages_user_month"),
    )

    # Monthly leaderboard table
    op.create_table(
        "period_rankings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("total_points", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("wagers_placed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("wagers_won", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("perfect_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("boosts_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("previous_rank", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "month", "year", name="uq_period_rankings_user_month"),
    )
    op.create_index(
        "idx_period_rankings_board", "period_rankings", ["year", "month", "total_points"]
    )

    # Job runs table (audit log)
    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("records_processed", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("job_runs")
    op.drop_index("idx_period_rankings_board", table_name="period_rankings")
    op.drop_table("period_rankings")
    op.drop_table("boost_usages")
    op.drop_table("wager_picks")
    op.drop_index("idx_wagers_unsettled", table_name="wagers")
    op.drop_table("wagers")
    op.drop_index("idx_odds_quotes_lookup", table_name="odds_quotes")
    op.drop_table("odds_quotes")
    op.drop_index("uq_betting_periods_single_open", table_name="betting_periods")
    op.drop_table("betting_periods")
    op.drop_index("idx_race_results_competitor_time", table_name="race_results")
    op.drop_table("race_results")
    op.drop_table("competitors")
