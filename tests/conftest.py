"""Shared test fixtures for Grid Monitor."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from grid_monitor.config.schema import AppConfig
from grid_monitor.history.store import HistoryStore
from grid_monitor.resilience.health_check import HealthChecker
from grid_monitor.timezone_utils import Clock, resolve_timezone


class FakeClock(Clock):
    """Clock whose time only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        super().__init__("Europe/Kyiv")
        self._now = start or datetime(2025, 1, 15, 8, 0, tzinfo=self.tz)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, dt: datetime) -> None:
        self._now = dt


@pytest.fixture
def kyiv():
    return resolve_timezone("Europe/Kyiv")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def health() -> HealthChecker:
    return HealthChecker(max_consecutive_failures=3)


@pytest.fixture
def history_path(tmp_path: Path) -> Path:
    return tmp_path / "history.json"


@pytest.fixture
def store(history_path: Path, clock: FakeClock) -> HistoryStore:
    return HistoryStore(history_path, clock.tz)


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """A complete configuration pointing at fake endpoints."""
    return AppConfig(
        home_assistant={
            "base_url": "http://ha.test",
            "token": "secret-token",
            "entity": "binary_sensor.grid",
            "poll_interval_seconds": 30,
        },
        outage={
            "base_url": "http://dtek.test",
            "region": "kyiv",
            "city": "Kyiv",
            "street": "Khreshchatyk",
            "building": "1",
            "poll_interval_seconds": 300,
        },
        history={"file_path": str(tmp_path / "history.json"), "window_seconds": 86400},
    )
