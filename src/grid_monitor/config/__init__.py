"""Configuration management for Grid Monitor."""

from grid_monitor.config.schema import AppConfig
from grid_monitor.config.manager import ConfigError, ConfigManager

__all__ = ["AppConfig", "ConfigError", "ConfigManager"]
