"""Rating module for Podium."""

from podium.services.rating.glicko2 import RatingState, soft_reset, update_ratings
from podium.services.rating.ingestion import RaceIngestionService

__all__ = ["RatingState", "update_ratings", "soft_reset", "RaceIngestionService"]
