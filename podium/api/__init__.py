"""HTTP API for Podium."""
