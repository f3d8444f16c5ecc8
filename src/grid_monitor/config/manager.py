"""Configuration loading: YAML defaults, user overrides, then environment."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml

from grid_monitor.config.schema import AppConfig

logger = logging.getLogger(__name__)

# Environment variable -> (dotted config key, is duration)
ENV_OVERRIDES: dict[str, tuple[str, bool]] = {
    "PORT": ("dashboard.port", False),
    "TIMEZONE": ("timezone", False),
    "HA_BASE_URL": ("home_assistant.base_url", False),
    "HA_TOKEN": ("home_assistant.token", False),
    "HA_ENTITY": ("home_assistant.entity", False),
    "HA_POLL_INTERVAL": ("home_assistant.poll_interval_seconds", True),
    "DTEK_BASE_URL": ("outage.base_url", False),
    "DTEK_REGION": ("outage.region", False),
    "DTEK_CITY": ("outage.city", False),
    "DTEK_STREET": ("outage.street", False),
    "DTEK_BUILDING": ("outage.building", False),
    "DTEK_POLL_INTERVAL": ("outage.poll_interval_seconds", True),
    "HISTORY_FILE_PATH": ("history.file_path", False),
    "HISTORY_WINDOW": ("history.window_seconds", True),
    "LOG_LEVEL": ("logging.level", False),
    "LOG_FORMAT": ("logging.format", False),
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class ConfigError(Exception):
    """Configuration is invalid or incomplete; the service cannot start."""


def parse_duration(value: str) -> float:
    """Parse ``"90"``, ``"90s"``, ``"5m"``, ``"1h30m"`` into seconds."""
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ConfigError(f"invalid duration {value!r}")
    return total


class ConfigManager:
    """Loads config from YAML files and the environment, and validates it."""

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._environ = os.environ if environ is None else environ
        self._config: AppConfig | None = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> AppConfig:
        """Load configuration from defaults + user overrides + environment."""
        defaults = self._load_yaml(self._defaults_path)
        overrides = self._load_yaml(self._user_path) if self._user_path.exists() else {}
        merged = self._deep_merge(defaults, overrides)
        merged = self._deep_merge(merged, self._env_overrides())
        self._config = AppConfig.model_validate(merged)
        logger.info("Configuration loaded successfully")
        return self._config

    def _env_overrides(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for env_name, (key, is_duration) in ENV_OVERRIDES.items():
            raw = self._environ.get(env_name)
            if raw is None or raw == "":
                continue
            value: Any = raw
            if is_duration:
                try:
                    value = parse_duration(raw)
                except ConfigError as e:
                    raise ConfigError(f"invalid duration for {env_name}: {e}") from e
            node = result
            *parents, leaf = key.split(".")
            for part in parents:
                node = node.setdefault(part, {})
            node[leaf] = value
        return result

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
