"""Latest combined view of grid state, outage window, and history."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import timedelta, tzinfo

from grid_monitor.history.ledger import HistoryItem
from grid_monitor.pollers.outage import OutageWindow
from grid_monitor.timezone_utils import Clock

GRID_PENDING = "pending"


@dataclass
class PowerState:
    """Snapshot rendered by the dashboard and returned by /api/state."""

    outage: OutageWindow | None = None
    grid: str = GRID_PENDING
    history: list[HistoryItem] = field(default_factory=list)
    address: str = ""
    version: str = "dev"
    demo: bool = False

    def to_dict(self, tz: tzinfo) -> dict:
        data = {
            "outage": self.outage.to_dict(tz) if self.outage else None,
            "grid": self.grid,
            "history": [item.to_dict(tz) for item in self.history],
            "address": self.address,
            "version": self.version,
        }
        if self.demo:
            data["demo"] = True
        return data


class StateAggregator:
    """Subscribes to the pollers and the ledger and keeps the latest values.

    Handlers may be called concurrently and in any order across feeds; each
    one replaces a single field under the lock.
    """

    def __init__(self, address: str = "", version: str = "dev") -> None:
        self._lock = threading.Lock()
        self._state = PowerState(address=address, version=version)

    def on_grid_state(self, state: str) -> None:
        with self._lock:
            self._state.grid = state

    def on_outage(self, outage: OutageWindow | None) -> None:
        with self._lock:
            self._state.outage = outage

    def on_history(self, history: list[HistoryItem]) -> None:
        with self._lock:
            self._state.history = list(history)

    def snapshot(self) -> PowerState:
        with self._lock:
            return replace(
                self._state, history=[replace(item) for item in self._state.history],
            )


def demo_state(grid: str, address: str, version: str, clock: Clock) -> PowerState:
    """Fixed example day used by the /example pages."""
    now = clock.now()

    def ago(**kwargs: float):
        return now - timedelta(**kwargs)

    history = [
        HistoryItem("off", ago(hours=23), ago(hours=21, minutes=45)),
        HistoryItem("on", ago(hours=21, minutes=45), ago(hours=18)),
        HistoryItem("off", ago(hours=18), ago(hours=14, minutes=30)),
        HistoryItem("on", ago(hours=14, minutes=30), ago(hours=6)),
        HistoryItem("off", ago(hours=6), ago(hours=4, minutes=45)),
    ]
    state = PowerState(grid=grid, address=address, version=version, demo=True)

    if grid == "on":
        history.append(HistoryItem("on", ago(hours=4, minutes=45)))
    else:
        history.append(HistoryItem("on", ago(hours=4, minutes=45), ago(minutes=35)))
        history.append(HistoryItem("off", ago(minutes=35)))
        state.outage = OutageWindow(
            kind="emergency", start=ago(minutes=35), end=now + timedelta(hours=1, minutes=25),
        )

    state.history = history
    return state
