"""Glicko-2 rating engine.

Implements Glickman's Glicko-2 update for multi-competitor races. A race
with N finishers is treated as a rating period in which every pair of
finishers played one game: the better finisher scores 1, the worse 0, and
tied finishers 0.5 each. All competitors are updated simultaneously from
their prior states.

Everything here is pure: no I/O, no shared state.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from podium.config.engine import RatingParams
from podium.exceptions import DataIntegrityError

logger = structlog.get_logger(__name__)

# Conversion factor between the display scale and the Glicko-2 scale
GLICKO2_SCALE = 173.7178


@dataclass(frozen=True)
class RatingState:
    """A competitor's rating on the display scale."""

    rating: float
    rd: float
    volatility: float


def to_glicko2(rating: float, rd: float, base_rating: float = 1500.0) -> tuple[float, float]:
    """Convert (rating, RD) to (mu, phi)."""
    return (rating - base_rating) / GLICKO2_SCALE, rd / GLICKO2_SCALE


def from_glicko2(mu: float, phi: float, base_rating: float = 1500.0) -> tuple[float, float]:
    """Convert (mu, phi) back to (rating, RD)."""
    return mu * GLICKO2_SCALE + base_rating, phi * GLICKO2_SCALE


def g(phi: float) -> float:
    """Dampening factor for an opponent's rating deviation."""
    return 1.0 / math.sqrt(1.0 + 3.0 * phi * phi / (math.pi * math.pi))


def expected_score(mu: float, mu_opponent: float, phi_opponent: float) -> float:
    """Expected score against one opponent."""
    return 1.0 / (1.0 + math.exp(-g(phi_opponent) * (mu - mu_opponent)))


def pairwise_score(rank: int, opponent_rank: int) -> float:
    """Score of a virtual game between two finishers (lower rank is better)."""
    if rank < opponent_rank:
        return 1.0
    if rank == opponent_rank:
        return 0.5
    return 0.0


def new_volatility(
    phi: float,
    sigma: float,
    delta: float,
    v: float,
    params: RatingParams,
) -> float:
    """
    Solve for the new volatility with the Illinois algorithm.

    Works on x = ln(sigma^2). The bracket [A, B] is established before
    iterating so the search always converges; both the bracketing loop and
    the root search are bounded by params.max_iterations.
    """
    tau = params.tau
    eps = params.convergence_tolerance
    a = math.log(sigma * sigma)
    phi2 = phi * phi
    delta2 = delta * delta

    def f(x: float) -> float:
        ex = math.exp(x)
        denom = phi2 + v + ex
        return ex * (delta2 - phi2 - v - ex) / (2.0 * denom * denom) - (x - a) / (tau * tau)

    A = a
    if delta2 > phi2 + v:
        B = math.log(delta2 - phi2 - v)
    else:
        k = 1
        while f(a - k * tau) < 0 and k < params.max_iterations:
            k += 1
        B = a - k * tau

    fA = f(A)
    fB = f(B)
    iterations = 0
    while abs(B - A) > eps and iterations < params.max_iterations:
        C = A + (A - B) * fA / (fB - fA)
        fC = f(C)
        if fC * fB <= 0:
            A, fA = B, fB
        else:
            fA = fA / 2.0
        B, fB = C, fC
        iterations += 1

    if iterations >= params.max_iterations:
        logger.warning("volatility_not_converged", sigma=sigma, delta=delta, v=v)

    return math.exp(A / 2.0)


def update_competitor(
    state: RatingState,
    opponents: list[tuple[RatingState, float]],
    params: RatingParams,
) -> RatingState:
    """
    Apply one rating period to a single competitor.

    Args:
        state: The competitor's prior state
        opponents: (opponent prior state, score against that opponent) pairs
        params: System constants

    Returns:
        The updated state. With no opponents the prior state is returned.
        Participation never raises RD.
    """
    if not opponents:
        return state

    base = params.default_rating
    mu, phi = to_glicko2(state.rating, state.rd, base)

    variance_inv = 0.0
    improvement = 0.0
    for opponent, score in opponents:
        mu_j, phi_j = to_glicko2(opponent.rating, opponent.rd, base)
        g_j = g(phi_j)
        e_j = expected_score(mu, mu_j, phi_j)
        variance_inv += g_j * g_j * e_j * (1.0 - e_j)
        improvement += g_j * (score - e_j)

    if variance_inv <= 0.0:
        return state

    v = 1.0 / variance_inv
    delta = v * improvement

    sigma_new = new_volatility(phi, state.volatility, delta, v, params)
    phi_star = math.sqrt(phi * phi + sigma_new * sigma_new)
    phi_new = 1.0 / math.sqrt(1.0 / (phi_star * phi_star) + 1.0 / v)
    phi_new = min(phi_new, phi)
    mu_new = mu + phi_new * phi_new * improvement

    rating, rd = from_glicko2(mu_new, phi_new, base)
    return RatingState(
        rating=rating,
        rd=min(rd, params.max_rd),
        volatility=sigma_new,
    )


def update_ratings(
    prior_states: Mapping[int, RatingState],
    finish_order: Mapping[int, int],
    params: RatingParams | None = None,
) -> dict[int, RatingState]:
    """
    Update every finisher of one race.

    Args:
        prior_states: competitor id -> state before the race
        finish_order: competitor id -> finishing rank (1 is best, ties allowed)
        params: System constants, defaults if not provided

    Returns:
        competitor id -> new state, for every competitor in finish_order

    Raises:
        DataIntegrityError: A finisher has no prior state
    """
    params = params or RatingParams()

    missing = [cid for cid in finish_order if cid not in prior_states]
    if missing:
        raise DataIntegrityError(f"unknown competitors in race: {sorted(missing)}")

    new_states: dict[int, RatingState] = {}
    for cid, rank in finish_order.items():
        opponents = [
            (prior_states[other], pairwise_score(rank, other_rank))
            for other, other_rank in finish_order.items()
            if other != cid
        ]
        new_states[cid] = update_competitor(prior_states[cid], opponents, params)

    return new_states


def soft_reset(state: RatingState, params: RatingParams | None = None) -> RatingState:
    """
    Monthly pull toward the default rating.

    rating moves reset_pull of the way back to the default, RD grows by
    reset_rd_increase up to max_rd, and volatility returns to its default.
    """
    params = params or RatingParams()
    rating = (1.0 - params.reset_pull) * state.rating + params.reset_pull * params.default_rating
    return RatingState(
        rating=rating,
        rd=min(state.rd + params.reset_rd_increase, params.max_rd),
        volatility=params.default_volatility,
    )
