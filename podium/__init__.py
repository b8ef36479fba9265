"""Podium: Glicko-2 rated weekly podium wagering engine."""

__version__ = "0.1.0"
