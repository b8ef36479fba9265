"""Wager scoring.

Pure points calculation for one wager against a confirmed podium:

    correct pick   = max(odd_at_bet, final_odd)   (best odds guaranteed)
                     x boost_multiplier if boosted
                     floored at min_points_per_correct_pick
    incorrect pick = incorrect_pick_points
    total          = sum of picks, x perfect_podium_bonus when all 3 hit

Amounts are Decimals rounded half-up to 2 places at each step, so totals
never carry float noise into the ledger.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from podium.config.engine import ScoringParams
from podium.models.domain import Position, WagerStatus

CENT = Decimal("0.01")


def to_points(value: float | Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ScoredPick:
    """Outcome of one pick."""

    competitor_id: int
    position: Position
    boosted: bool
    odd_at_bet: float
    final_odd: float | None
    is_correct: bool
    used_bog_odd: bool
    points: Decimal

    @property
    def odd_used(self) -> float:
        """The odd the payout was based on."""
        return self.final_odd if self.used_bog_odd else self.odd_at_bet


@dataclass(frozen=True)
class WagerScore:
    """Outcome of a whole wager."""

    picks: list[ScoredPick] = field(default_factory=list)
    points_before_bonus: Decimal = Decimal("0.00")
    perfect_bonus: Decimal = Decimal("0.00")
    points: Decimal = Decimal("0.00")
    is_perfect: bool = False

    @property
    def status(self) -> WagerStatus:
        return WagerStatus.WON if self.points > 0 else WagerStatus.LOST

    @property
    def correct_count(self) -> int:
        return sum(1 for p in self.picks if p.is_correct)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "points": float(self.points),
            "points_before_bonus": float(self.points_before_bonus),
            "perfect_bonus": float(self.perfect_bonus),
            "is_perfect": self.is_perfect,
            "correct": self.correct_count,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class PickInput:
    """What scoring needs to know about a placed pick."""

    competitor_id: int
    position: Position
    odd_at_bet: float
    boosted: bool = False


def score_pick(
    pick: PickInput,
    podium: Sequence[int],
    final_odd: float | None,
    params: ScoringParams,
) -> ScoredPick:
    """Score one pick against the podium (first, second, third)."""
    position = Position(pick.position)
    is_correct = podium[position.slot] == pick.competitor_id
    used_bog = False

    if is_correct:
        odd = pick.odd_at_bet
        if final_odd is not None and final_odd > pick.odd_at_bet:
            odd = final_odd
            used_bog = True
        points = Decimal(str(odd))
        if pick.boosted:
            points *= Decimal(str(params.boost_multiplier))
        points = max(points, Decimal(str(params.min_points_per_correct_pick)))
    else:
        points = Decimal(str(params.incorrect_pick_points))

    return ScoredPick(
        competitor_id=pick.competitor_id,
        position=position,
        boosted=pick.boosted,
        odd_at_bet=pick.odd_at_bet,
        final_odd=final_odd,
        is_correct=is_correct,
        used_bog_odd=used_bog,
        points=to_points(points),
    )


def score_wager(
    picks: Sequence[PickInput],
    podium: Sequence[int],
    final_odds: Mapping[tuple[int, Position], float],
    params: ScoringParams | None = None,
) -> WagerScore:
    """
    Score a wager.

    Args:
        picks: The wager's picks
        podium: Confirmed (first, second, third) competitor ids
        final_odds: (competitor id, position) -> final odd; missing entries
            mean no final quote, so the odd at bet stands
        params: Payout parameters, defaults if not provided
    """
    params = params or ScoringParams()
    scored = [
        score_pick(p, podium, final_odds.get((p.competitor_id, Position(p.position))), params)
        for p in picks
    ]

    before_bonus = to_points(sum((p.points for p in scored), Decimal("0")))
    is_perfect = len(scored) == len(Position) and all(p.is_correct for p in scored)
    total = before_bonus
    bonus = Decimal("0.00")
    if is_perfect:
        total = to_points(before_bonus * Decimal(str(params.perfect_podium_bonus)))
        bonus = total - before_bonus

    return WagerScore(
        picks=scored,
        points_before_bonus=before_bonus,
        perfect_bonus=bonus,
        points=total,
        is_perfect=is_perfect,
    )
