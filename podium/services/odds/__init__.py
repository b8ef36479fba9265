"""Odds module for Podium."""

from podium.services.odds.service import OddsService, latest_quotes
from podium.services.odds.simulator import Entrant, OddsSimulator, PositionQuote

__all__ = ["OddsService", "latest_quotes", "Entrant", "OddsSimulator", "PositionQuote"]
