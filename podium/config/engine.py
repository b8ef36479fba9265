"""Engine configuration.

Thresholds and tunables for the rating, eligibility, odds and scoring
components. Values come from the ``engine`` section of defaults.yaml and
fall back to the dataclass defaults below. Each component receives its
own section through its constructor; nothing here is mutated at runtime.
"""

from dataclasses import dataclass, field, fields
from functools import lru_cache
from typing import Any

from podium.config.settings import get_settings


@dataclass(frozen=True)
class RatingParams:
    """Glicko-2 system constants and rating maintenance rules."""
    default_rating: float = 1500.0
    default_rd: float = 350.0
    default_volatility: float = 0.06
    tau: float = 0.5
    convergence_tolerance: float = 1e-6
    max_iterations: int = 100

    reset_pull: float = 0.25
    reset_rd_increase: float = 50.0
    max_rd: float = 350.0

    recent_positions_kept: int = 5
    form_weights: tuple[float, ...] = (1.0, 0.8, 0.6, 0.4, 0.2)
    max_finish_rank: int = 12


@dataclass(frozen=True)
class EligibilityRules:
    """Who may be quoted and picked in a period."""
    min_lifetime_races: int = 5
    min_recent_races: int = 2
    recent_window_days: int = 14
    require_period_activity: bool = False
    min_races_this_period: int = 1


@dataclass(frozen=True)
class OddsParams:
    """Monte Carlo simulation and odds bounds."""
    trials: int = 50_000
    positions: int = 3
    min_odd: float = 1.1
    max_odd: float = 50.0
    seed: int | None = None


@dataclass(frozen=True)
class ScoringParams:
    """Wager settlement payouts."""
    perfect_podium_bonus: float = 2.0
    boost_multiplier: float = 2.0
    min_points_per_correct_pick: float = 0.1
    incorrect_pick_points: float = 0.0


@dataclass(frozen=True)
class PodiumParams:
    """Podium determination from ratings."""
    conservative_rd_factor: float = 2.0


@dataclass(frozen=True)
class EngineConfig:
    """All engine sections together."""
    rating: RatingParams = field(default_factory=RatingParams)
    eligibility: EligibilityRules = field(default_factory=EligibilityRules)
    odds: OddsParams = field(default_factory=OddsParams)
    scoring: ScoringParams = field(default_factory=ScoringParams)
    podium: PodiumParams = field(default_factory=PodiumParams)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "EngineConfig":
        """Build a config from a parsed ``engine`` mapping, ignoring unknown keys."""
        data = data or {}
        return cls(
            rating=_section(RatingParams, data.get("rating")),
            eligibility=_section(EligibilityRules, data.get("eligibility")),
            odds=_section(OddsParams, data.get("odds")),
            scoring=_section(ScoringParams, data.get("scoring")),
            podium=_section(PodiumParams, data.get("podium")),
        )


def _section(section_cls, values: dict[str, Any] | None):
    known = {f.name for f in fields(section_cls)}
    kwargs = {k: v for k, v in (values or {}).items() if k in known}
    # YAML lists arrive as lists; frozen dataclasses keep tuples
    for key, value in kwargs.items():
        if isinstance(value, list):
            kwargs[key] = tuple(value)
    return section_cls(**kwargs)


@lru_cache
def get_engine_config() -> EngineConfig:
    """Get the cached engine configuration from defaults.yaml."""
    defaults = get_settings().load_defaults_config()
    return EngineConfig.from_dict(defaults.get("engine"))
