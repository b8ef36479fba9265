"""Betting eligibility filter.

Decides whether a competitor may be quoted and picked. Checks run in a
fixed order and the first failure is reported:

1. calibrating: fewer than min_lifetime_races races ever
2. inactive: fewer than min_recent_races in the trailing window
3. no_races_this_period: optional weekly activity rule, off by default
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from podium.config.engine import EligibilityRules
from podium.services.clock import as_utc


class IneligibleReason(str, Enum):
    """Why a competitor is excluded from a period."""
    CALIBRATING = "calibrating"
    INACTIVE = "inactive"
    NO_RACES_THIS_PERIOD = "no_races_this_period"


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of an eligibility check with the counts it was based on."""

    eligible: bool
    reason: IneligibleReason | None
    lifetime_races: int
    recent_races: int
    races_this_period: int | None = None


def count_recent(race_dates: Iterable[datetime], now: datetime, window_days: int) -> int:
    """Races within the trailing window, bounds inclusive."""
    now = as_utc(now)
    window_start = now - timedelta(days=window_days)
    return sum(1 for d in race_dates if window_start <= as_utc(d) <= now)


def check_eligibility(
    lifetime_races: int,
    recent_race_dates: Iterable[datetime],
    now: datetime,
    rules: EligibilityRules | None = None,
    races_this_period: int | None = None,
) -> EligibilityResult:
    """
    Check one competitor against the eligibility rules.

    Args:
        lifetime_races: All races ever run by the competitor
        recent_race_dates: Timestamps of the competitor's races; anything
            outside the trailing window is ignored
        now: Reference time for the window
        rules: Thresholds, defaults if not provided
        races_this_period: Races in the current period, only consulted when
            rules.require_period_activity is on

    Returns:
        EligibilityResult. reason is None exactly when eligible.
    """
    rules = rules or EligibilityRules()
    recent = count_recent(recent_race_dates, now, rules.recent_window_days)

    def result(reason: IneligibleReason | None) -> EligibilityResult:
        return EligibilityResult(
            eligible=reason is None,
            reason=reason,
            lifetime_races=lifetime_races,
            recent_races=recent,
            races_this_period=races_this_period,
        )

    if lifetime_races < rules.min_lifetime_races:
        return result(IneligibleReason.CALIBRATING)

    if recent < rules.min_recent_races:
        return result(IneligibleReason.INACTIVE)

    if rules.require_period_activity and (races_this_period or 0) < rules.min_races_this_period:
        return result(IneligibleReason.NO_RACES_THIS_PERIOD)

    return result(None)
