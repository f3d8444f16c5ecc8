"""Live grid on/off state from a Home Assistant sensor.

Endpoint: GET /api/states/<entity> with a long-lived access token.
"""

from __future__ import annotations

import logging

import httpx

from grid_monitor.pollers.base import (
    DEFAULT_FAILURE_BACKOFF_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    FetchError,
    Poller,
)
from grid_monitor.resilience.health_check import HealthChecker

logger = logging.getLogger(__name__)

GRID_ON = "on"
GRID_OFF = "off"
GRID_STATES = frozenset({GRID_ON, GRID_OFF})


class GridStatePoller(Poller[str]):
    """Polls the grid sensor and publishes "on"/"off" transitions."""

    name = "grid_state"

    def __init__(
        self,
        url: str,
        token: str,
        poll_interval: float,
        failure_backoff: float = DEFAULT_FAILURE_BACKOFF_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        health: HealthChecker | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            poll_interval,
            failure_backoff=failure_backoff,
            timeout=timeout,
            health=health,
            client=client,
        )
        self._url = url
        self._token = token

    async def fetch(self) -> str:
        logger.debug("Pulling grid state from %s", self._url)
        data = await self._get_json(
            self._url, headers={"Authorization": f"Bearer {self._token}"},
        )
        if not isinstance(data, dict):
            raise FetchError(f"failed to decode grid state: expected object, got {type(data).__name__}")

        state = data.get("state")
        if not isinstance(state, str) or state not in GRID_STATES:
            raise FetchError(
                f"unexpected value in grid state found, expected on|off, was {state!r}"
            )
        return state

    def describe(self, value: str) -> str:
        return value
