"""Unit tests for wager scoring.

CRITICAL TESTS:
- Correct picks MUST pay the better of the odd at bet and the final odd
- A boost MUST double only the boosted pick
- A perfect podium MUST double the whole wager
- Points MUST be rounded half-up to 2 decimal places
"""

from decimal import Decimal

from podium.config.engine import ScoringParams
from podium.models.domain import Position, WagerStatus
from podium.services.settlement.scoring import PickInput, score_pick, score_wager, to_points

PODIUM = (10, 20, 30)


def picks(*specs) -> list[PickInput]:
    """(competitor, position, odd, boosted) tuples to pick inputs."""
    return [PickInput(cid, pos, odd, boosted) for cid, pos, odd, boosted in specs]


class TestScorePick:
    """Test single pick scoring."""

    def setup_method(self):
        """Set up test fixtures."""
        self.params = ScoringParams()

    def test_correct_pick_pays_odd_at_bet(self):
        """Final odd shorter than the bet: the bet odd stands."""
        pick = PickInput(10, Position.FIRST, 3.5)
        scored = score_pick(pick, PODIUM, 2.8, self.params)

        assert scored.is_correct
        assert not scored.used_bog_odd
        assert scored.points == Decimal("3.50")
        assert scored.odd_used == 3.5

    def test_best_odds_guaranteed(self):
        """Final odd drifted out: the final odd is paid."""
        pick = PickInput(10, Position.FIRST, 3.5)
        scored = score_pick(pick, PODIUM, 4.2, self.params)

        assert scored.used_bog_odd
        assert scored.points == Decimal("4.20")
        assert scored.odd_used == 4.2

    def test_equal_final_odd_not_flagged_as_bog(self):
        """Same odd: no BOG flag."""
        scored = score_pick(PickInput(10, Position.FIRST, 3.5), PODIUM, 3.5, self.params)
        assert not scored.used_bog_odd

    def test_missing_final_odd_uses_bet_odd(self):
        """No final quote: pay the odd at bet."""
        scored = score_pick(PickInput(20, Position.SECOND, 2.75), PODIUM, None, self.params)
        assert scored.points == Decimal("2.75")

    def test_right_competitor_wrong_position(self):
        """Competitor on the podium but in another place scores nothing."""
        scored = score_pick(PickInput(20, Position.FIRST, 6.0), PODIUM, 6.0, self.params)
        assert not scored.is_correct
        assert scored.points == Decimal("0.00")

    def test_boost_doubles_correct_pick(self):
        """Boosted correct pick pays twice the odd."""
        scored = score_pick(PickInput(30, Position.THIRD, 2.4, True), PODIUM, 2.0, self.params)
        assert scored.points == Decimal("4.80")

    def test_boost_on_wrong_pick_is_worthless(self):
        """A boost does not help an incorrect pick."""
        scored = score_pick(PickInput(99, Position.THIRD, 9.0, True), PODIUM, 9.0, self.params)
        assert scored.points == Decimal("0.00")

    def test_minimum_points_floor(self):
        """Correct picks never pay below the floor."""
        params = ScoringParams(min_points_per_correct_pick=5.0)
        scored = score_pick(PickInput(10, Position.FIRST, 1.2), PODIUM, 1.1, params)
        assert scored.points == Decimal("5.00")

    def test_half_up_rounding(self):
        """2.35 x 1.5 = 3.525 rounds to 3.53."""
        params = ScoringParams(boost_multiplier=1.5)
        scored = score_pick(PickInput(10, Position.FIRST, 2.35, True), PODIUM, None, params)
        assert scored.points == Decimal("3.53")


class TestScoreWager:
    """Test whole wager scoring."""

    def setup_method(self):
        """Set up test fixtures."""
        self.params = ScoringParams()

    def test_perfect_podium_doubles_total(self):
        """All three correct: sum x 2."""
        wager = picks(
            (10, Position.FIRST, 2.0, False),
            (20, Position.SECOND, 3.0, False),
            (30, Position.THIRD, 4.0, False),
        )
        score = score_wager(wager, PODIUM, {}, self.params)

        assert score.is_perfect
        assert score.points_before_bonus == Decimal("9.00")
        assert score.perfect_bonus == Decimal("9.00")
        assert score.points == Decimal("18.00")
        assert score.status == WagerStatus.WON
        assert score.correct_count == 3

    def test_perfect_podium_with_boost_and_bog(self):
        """Boost and BOG apply before the perfect bonus."""
        wager = picks(
            (10, Position.FIRST, 2.0, True),
            (20, Position.SECOND, 3.0, False),
            (30, Position.THIRD, 4.0, False),
        )
        final_odds = {(10, Position.FIRST): 2.5, (20, Position.SECOND): 2.6}
        score = score_wager(wager, PODIUM, final_odds, self.params)

        # (2.5 x 2) + 3.0 + 4.0 = 12.0, doubled
        assert score.points == Decimal("24.00")
        assert [p.used_bog_odd for p in score.picks] == [True, False, False]

    def test_partial_wager(self):
        """One correct pick: no bonus."""
        wager = picks(
            (10, Position.FIRST, 2.0, False),
            (30, Position.SECOND, 3.0, False),
            (20, Position.THIRD, 4.0, False),
        )
        score = score_wager(wager, PODIUM, {}, self.params)

        assert not score.is_perfect
        assert score.points == Decimal("2.00")
        assert score.perfect_bonus == Decimal("0.00")
        assert score.status == WagerStatus.WON

    def test_all_wrong_is_lost(self):
        """Zero points means LOST."""
        wager = picks(
            (1, Position.FIRST, 2.0, False),
            (2, Position.SECOND, 3.0, False),
            (3, Position.THIRD, 4.0, False),
        )
        score = score_wager(wager, PODIUM, {}, self.params)

        assert score.points == Decimal("0.00")
        assert score.status == WagerStatus.LOST
        assert score.correct_count == 0

    def test_final_odds_keyed_by_position(self):
        """A final odd for another position is not used."""
        wager = picks((10, Position.FIRST, 2.0, False))
        score = score_wager(wager, PODIUM, {(10, Position.SECOND): 9.0}, self.params)
        assert score.points == Decimal("2.00")

    def test_to_dict(self):
        """Test serialization."""
        wager = picks((10, Position.FIRST, 2.0, False))
        data = score_wager(wager, PODIUM, {}, self.params).to_dict()
        assert data["points"] == 2.0
        assert data["status"] == "WON"
        assert data["correct"] == 1


class TestToPoints:
    """Test the rounding helper."""

    def test_rounds_half_up(self):
        assert to_points(0.125) == Decimal("0.13")
        assert to_points(Decimal("2.005")) == Decimal("2.01")

    def test_float_noise_removed(self):
        assert to_points(0.1 + 0.2) == Decimal("0.30")
