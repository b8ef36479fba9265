"""Business services for Podium."""
