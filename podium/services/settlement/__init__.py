"""Settlement module for Podium."""

from podium.services.settlement.engine import SettlementEngine, SettlementSummary
from podium.services.settlement.podium import determine_podium
from podium.services.settlement.scoring import score_wager

__all__ = ["SettlementEngine", "SettlementSummary", "determine_podium", "score_wager"]
