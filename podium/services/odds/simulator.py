"""Monte Carlo podium odds.

Each competitor gets a strength alpha = exp(mu * g(phi)) from its Glicko-2
state, so uncertain ratings are pulled toward the field. A race is drawn
as a Plackett-Luce ranking: the winner is picked with probability
proportional to strength, then second from those remaining, and so on.
Repeating the draw K times gives the probability of finishing first,
second and third; decimal odds are the clamped reciprocals.

The simulation is vectorised over trials with numpy and seeded, so the
same inputs and seed always produce the same quotes.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import structlog

from podium.config.engine import OddsParams
from podium.services.rating.glicko2 import g, to_glicko2

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Entrant:
    """A competitor entering the simulation."""

    competitor_id: int
    rating: float
    rd: float


@dataclass(frozen=True)
class PositionQuote:
    """Probabilities and decimal odds for one competitor."""

    competitor_id: int
    prob_first: float
    prob_second: float
    prob_third: float
    odd_first: float
    odd_second: float
    odd_third: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "competitor_id": self.competitor_id,
            "prob_first": self.prob_first,
            "prob_second": self.prob_second,
            "prob_third": self.prob_third,
            "odd_first": self.odd_first,
            "odd_second": self.odd_second,
            "odd_third": self.odd_third,
            "metadata": self.metadata,
        }


class OddsSimulator:
    """
    Compute podium odds for a field of competitors.

    Usage:
        simulator = OddsSimulator(params)
        quotes = simulator.compute_odds(entrants, seed=42)
    """

    def __init__(self, params: OddsParams | None = None):
        self.params = params or OddsParams()

    def compute_odds(
        self,
        entrants: Sequence[Entrant],
        seed: int | None = None,
    ) -> list[PositionQuote]:
        """
        Quote every entrant, preserving input order.

        Args:
            entrants: The eligible field
            seed: RNG seed. Falls back to params.seed, then to fresh
                entropy; the seed used is recorded in each quote's metadata.

        Returns:
            One PositionQuote per entrant. Empty for an empty field.
        """
        n = len(entrants)
        if n == 0:
            return []

        if seed is None:
            seed = self.params.seed
        if seed is None:
            seed = int(np.random.SeedSequence().entropy % (2**63))

        mu, phi = np.array([to_glicko2(e.rating, e.rd) for e in entrants]).T
        g_phi = np.array([g(p) for p in phi])
        log_strength = mu * g_phi
        # Shift by the max before exponentiating so the largest strength is 1
        strength = np.exp(log_strength - log_strength.max())
        analytic_win = strength / strength.sum()

        positions = min(self.params.positions, n)
        probabilities = np.zeros((n, 3))

        if np.ptp(log_strength) == 0.0:
            # Equal strengths: every ordering is equally likely
            probabilities[:, :positions] = 1.0 / n
            trials = 0
        else:
            trials = self.params.trials
            hits = self._simulate(strength, positions, trials, seed)
            probabilities[:, :positions] = hits / trials

        quotes = []
        for i, entrant in enumerate(entrants):
            probs = probabilities[i]
            odds = [self.to_odd(p) for p in probs]
            quotes.append(
                PositionQuote(
                    competitor_id=entrant.competitor_id,
                    prob_first=round(float(probs[0]), 6),
                    prob_second=round(float(probs[1]), 6),
                    prob_third=round(float(probs[2]), 6),
                    odd_first=odds[0],
                    odd_second=odds[1],
                    odd_third=odds[2],
                    metadata={
                        "mu": round(float(mu[i]), 6),
                        "phi": round(float(phi[i]), 6),
                        "g": round(float(g_phi[i]), 6),
                        "strength": round(float(strength[i]), 6),
                        "analytic_win_prob": round(float(analytic_win[i]), 6),
                        "trials": trials,
                        "seed": seed,
                    },
                )
            )

        logger.debug(
            "odds_simulated",
            competitors=n,
            positions=positions,
            trials=trials,
            seed=seed,
        )
        return quotes

    def _simulate(
        self,
        strength: np.ndarray,
        positions: int,
        trials: int,
        seed: int,
    ) -> np.ndarray:
        """
        Draw `positions` places without replacement in every trial.

        Returns:
            (n, positions) array of finish counts
        """
        n = strength.shape[0]
        rng = np.random.default_rng(seed)
        weights = np.tile(strength, (trials, 1))
        available = np.ones((trials, n), dtype=bool)
        rows = np.arange(trials)
        hits = np.zeros((n, positions))

        for pos in range(positions):
            cumulative = np.cumsum(weights, axis=1)
            targets = rng.random(trials) * cumulative[:, -1]
            picked = (cumulative <= targets[:, None]).sum(axis=1)
            picked = np.minimum(picked, n - 1)

            # Remaining strengths that underflowed to zero: draw uniformly
            # among the competitors not yet placed in that trial
            exhausted = weights[rows, picked] <= 0.0
            if exhausted.any():
                open_slots = np.cumsum(available[exhausted], axis=1)
                choice = np.floor(rng.random(int(exhausted.sum())) * open_slots[:, -1])
                picked[exhausted] = (open_slots <= choice[:, None]).sum(axis=1)

            hits[:, pos] = np.bincount(picked, minlength=n)
            weights[rows, picked] = 0.0
            available[rows, picked] = False

        return hits

    def to_odd(self, probability: float) -> float:
        """Decimal odd for a probability, clamped to [min_odd, max_odd]."""
        if not probability > 0.0 or not np.isfinite(probability):
            return self.params.max_odd
        odd = 1.0 / probability
        return round(self.clamp(odd, self.params.min_odd, self.params.max_odd), 2)

    @staticmethod
    def clamp(value: float, min_val: float, max_val: float) -> float:
        """Clamp value to range."""
        return max(min_val, min(max_val, value))


def win_probabilities(entrants: Sequence[Entrant]) -> list[float]:
    """Closed-form P(first) = alpha_i / sum(alpha) for each entrant."""
    if not entrants:
        return []
    log_strength = np.array(
        [mu * g(phi) for mu, phi in (to_glicko2(e.rating, e.rd) for e in entrants)]
    )
    strength = np.exp(log_strength - log_strength.max())
    return [float(p) for p in strength / strength.sum()]
