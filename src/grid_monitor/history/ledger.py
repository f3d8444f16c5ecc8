"""Deduplicated, time-windowed history of grid state intervals."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, tzinfo
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

from grid_monitor.pubsub import Subscriber, dispatch
from grid_monitor.resilience.health_check import HealthChecker
from grid_monitor.timezone_utils import Clock, format_datetime, parse_datetime

if TYPE_CHECKING:
    from grid_monitor.history.store import HistoryStore

logger = logging.getLogger(__name__)

HEALTH_SOURCE = "history"
VALID_STATES = frozenset({"on", "off"})


@dataclass
class HistoryItem:
    """One interval of grid state. ``end`` is None while the interval is ongoing."""

    state: str
    start: datetime
    end: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def to_dict(self, tz: tzinfo) -> dict:
        data = {"state": self.state, "from": format_datetime(self.start, tz)}
        if self.end is not None:
            data["to"] = format_datetime(self.end, tz)
        return data

    @classmethod
    def from_dict(cls, data: dict, tz: tzinfo) -> HistoryItem:
        if not isinstance(data, dict):
            raise TypeError(f"history entry must be an object, got {type(data).__name__}")
        state = data["state"]
        if state not in VALID_STATES:
            raise ValueError(f"unexpected history state {state!r}")
        start = parse_datetime(data["from"], tz)
        if start is None:
            raise ValueError("history entry has an empty 'from'")
        return cls(state=state, start=start, end=parse_datetime(data.get("to"), tz))


class HistoryLedger:
    """Owns the history sequence and keeps it consistent.

    Invariants held after every update:
    - adjacent entries never share a state;
    - only the last entry may be open;
    - closed entries that ended before ``now - window`` are dropped.

    All access to the sequence goes through one lock. Subscriber dispatch
    and disk writes happen after it is released; memory stays authoritative
    if the write fails.
    """

    def __init__(
        self,
        store: HistoryStore,
        window: timedelta,
        clock: Clock,
        health: HealthChecker | None = None,
    ) -> None:
        self._store = store
        self._window = window
        self._clock = clock
        self._health = health
        self._lock = threading.Lock()
        self._items: list[HistoryItem] = []
        self._revision = 0
        self._subscribers: list[Subscriber[list[HistoryItem]]] = []
        if health is not None:
            health.register(HEALTH_SOURCE)

    def start(self, subscribers: Sequence[Subscriber[list[HistoryItem]]]) -> None:
        """Load persisted history, then register subscribers."""
        items = self._store.load()
        with self._lock:
            self._items = items
        self._subscribers = list(subscribers)

    def state(self) -> list[HistoryItem]:
        """Return a copy of the current sequence."""
        with self._lock:
            return [replace(item) for item in self._items]

    def on_history_update(self) -> Callable[[str], Awaitable[None]]:
        """Return the ingestion handler, to be registered with the grid poller."""

        async def handle(state: str) -> None:
            snapshot = self._apply(state)
            if snapshot is None:
                return
            revision, items = snapshot
            dispatch(self._subscribers, items, source=HEALTH_SOURCE)
            await self._persist(items, revision)

        return handle

    def _apply(self, state: str) -> tuple[int, list[HistoryItem]] | None:
        with self._lock:
            if self._items and self._items[-1].state == state:
                return None

            now = self._clock.now()
            if self._items:
                self._items[-1].end = now
            self._items.append(HistoryItem(state=state, start=now))
            self._evict(now)

            self._revision += 1
            logger.info("Grid state -> %s (%d history entries)", state, len(self._items))
            return self._revision, [replace(item) for item in self._items]

    def _evict(self, now: datetime) -> None:
        cutoff = now - self._window
        fresh = [item for item in self._items if item.end is None or not item.end < cutoff]
        dropped = len(self._items) - len(fresh)
        if dropped:
            logger.debug("Evicted %d history entries older than %s", dropped, cutoff.isoformat())
        self._items = fresh

    async def _persist(self, items: list[HistoryItem], revision: int) -> None:
        try:
            await asyncio.to_thread(self._store.save, items, revision)
        except OSError as e:
            logger.error("History file write failed: %s", e, exc_info=True)
            if self._health is not None:
                self._health.capture_exception(HEALTH_SOURCE, e)
            return
        if self._health is not None:
            self._health.record_success(HEALTH_SOURCE)
