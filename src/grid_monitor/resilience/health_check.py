"""Source health tracking and failure reporting."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class SourceHealth:
    """Health state of a single polled source or sink."""

    name: str
    healthy: bool = True
    last_success: float = 0.0
    last_failure: float = 0.0
    consecutive_failures: int = 0
    total_failures: int = 0
    last_error: str = ""

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "last_error": self.last_error,
        }


class HealthChecker:
    """Collects failures from pollers and the history store.

    This is where recoverable errors are reported: they are counted per
    source, and a source with too many consecutive failures is flagged
    unhealthy until its next success.
    """

    def __init__(self, max_consecutive_failures: int = 3) -> None:
        self._max_failures = max_consecutive_failures
        self._sources: dict[str, SourceHealth] = {}

    def register(self, name: str) -> None:
        """Register a source for health tracking."""
        self._sources[name] = SourceHealth(name=name, last_success=time.monotonic())

    def record_success(self, name: str) -> None:
        """Record a successful operation for a source."""
        if name not in self._sources:
            self.register(name)
        s = self._sources[name]
        if not s.healthy:
            logger.info("Source '%s' recovered after %d failures", name, s.consecutive_failures)
        s.healthy = True
        s.last_success = time.monotonic()
        s.consecutive_failures = 0

    def record_failure(self, name: str, error: str = "") -> None:
        """Record a failed operation for a source."""
        if name not in self._sources:
            self.register(name)
        s = self._sources[name]
        s.last_failure = time.monotonic()
        s.consecutive_failures += 1
        s.total_failures += 1
        s.last_error = error

        if s.healthy and s.consecutive_failures >= self._max_failures:
            s.healthy = False
            logger.warning(
                "Source '%s' marked unhealthy (%d consecutive failures): %s",
                name, s.consecutive_failures, error,
            )

    def capture_exception(self, name: str, exc: BaseException) -> None:
        """Report an exception raised while serving ``name``."""
        self.record_failure(name, f"{type(exc).__name__}: {exc}")

    def is_healthy(self, name: str) -> bool:
        """Check if a specific source is healthy."""
        s = self._sources.get(name)
        return s.healthy if s else True  # Unknown sources assumed healthy

    def get_unhealthy(self) -> list[str]:
        """Return list of unhealthy source names."""
        return [name for name, s in self._sources.items() if not s.healthy]

    def all_healthy(self) -> bool:
        """Check if all registered sources are healthy."""
        return all(s.healthy for s in self._sources.values())

    def get_health(self, name: str) -> SourceHealth | None:
        return self._sources.get(name)

    def get_all_health(self) -> dict[str, SourceHealth]:
        return dict(self._sources)
