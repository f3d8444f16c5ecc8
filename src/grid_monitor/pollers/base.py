"""Shared polling loop for the external state sources."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, Sequence, TypeVar

import httpx

from grid_monitor.logging.context import source_context
from grid_monitor.pubsub import Subscriber, dispatch
from grid_monitor.resilience.health_check import HealthChecker

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FAILURE_BACKOFF_SECONDS = 10.0
DEFAULT_TIMEOUT_SECONDS = 10.0


class FetchError(Exception):
    """A poll attempt failed: network, status, body, or value error."""


class Poller(ABC, Generic[T]):
    """Polls one source on a timer and publishes changes to subscribers.

    Each successful fetch is compared with the last known value; only a
    change updates the stored value and notifies subscribers. A failed fetch
    is logged and reported, then retried after a short fixed backoff without
    touching the stored value. The stored value starts as None, so a first
    report of None is not a change.
    """

    name: str = "poller"

    def __init__(
        self,
        poll_interval: float,
        failure_backoff: float = DEFAULT_FAILURE_BACKOFF_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        health: HealthChecker | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._poll_interval = poll_interval
        self._failure_backoff = failure_backoff
        self._health = health
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._state: T | None = None
        self._subscribers: list[Subscriber[T]] = []
        if health is not None:
            health.register(self.name)

    @property
    def state(self) -> T | None:
        """Last value fetched successfully, None before the first one."""
        return self._state

    def start(
        self, stop_event: asyncio.Event, subscribers: Sequence[Subscriber[T]],
    ) -> asyncio.Task:
        """Register subscribers and launch the polling loop as a background task."""
        self._subscribers = list(subscribers)
        return asyncio.create_task(self.run(stop_event), name=f"{self.name}_poller")

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set."""
        with source_context(self.name):
            await self._poll_loop(stop_event)

    async def _poll_loop(self, stop_event: asyncio.Event) -> None:
        logger.info(
            "%s poller starting (interval: %ss, backoff: %ss)",
            self.name, self._poll_interval, self._failure_backoff,
        )
        while not stop_event.is_set():
            try:
                value = await self.fetch()
            except Exception as exc:
                logger.error("%s poll failed: %s", self.name, exc, exc_info=True)
                if self._health is not None:
                    self._health.capture_exception(self.name, exc)
                if await _wait_for_stop(stop_event, self._failure_backoff):
                    break
                continue

            if self._health is not None:
                self._health.record_success(self.name)
            if stop_event.is_set():
                break
            self.on_tick(value)

            if await _wait_for_stop(stop_event, self._poll_interval):
                break
        logger.info("%s poller stopped", self.name)

    def on_tick(self, value: T) -> bool:
        """Store and publish ``value`` if it differs from the last known one.

        Returns True when subscribers were notified.
        """
        if not self.has_changed(self._state, value):
            return False
        self._state = value
        logger.info("%s changed: %s", self.name, self.describe(value))
        dispatch(self._subscribers, value, source=self.name)
        return True

    def has_changed(self, previous: T | None, current: T) -> bool:
        return previous != current

    def describe(self, value: T) -> str:
        return repr(value)

    @abstractmethod
    async def fetch(self) -> T:
        """Fetch the current value, raising FetchError on any failure."""
        ...

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        """GET ``url`` and decode a JSON body, mapping failures to FetchError."""
        try:
            resp = await self._client.get(url, **kwargs)
        except httpx.HTTPError as exc:
            raise FetchError(f"failed to GET {self.name}: {exc}") from exc

        if resp.status_code != 200:
            raise FetchError(
                f"unexpected response status code, expected 200, was {resp.status_code}"
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise FetchError(f"failed to decode {self.name} response: {exc}") from exc


async def _wait_for_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """Sleep up to ``timeout`` seconds; return True if stop was requested."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False
