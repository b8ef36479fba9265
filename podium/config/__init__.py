"""Configuration for Podium."""

from podium.config.engine import EngineConfig, get_engine_config
from podium.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "EngineConfig", "get_engine_config"]
