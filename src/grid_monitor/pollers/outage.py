"""Scheduled and emergency outage windows from the utility's status API.

Endpoint: GET /api/status?region=&city=&street=

Response shape::

    {"city": "...", "street": "...",
     "buildings": {"<building>": {"group": "...",
                                  "outage": null | {"type": "...",
                                                    "from": "HH:MM DD.MM.YYYY" | null,
                                                    "to": "HH:MM DD.MM.YYYY" | null}}}}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo

import httpx

from grid_monitor.pollers.base import (
    DEFAULT_FAILURE_BACKOFF_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    FetchError,
    Poller,
)
from grid_monitor.resilience.health_check import HealthChecker
from grid_monitor.timezone_utils import DEFAULT_TIMEZONE, format_datetime, parse_datetime, resolve_timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutageWindow:
    """One announced outage. Equality is structural over all three fields."""

    kind: str
    start: datetime | None = None
    end: datetime | None = None

    def to_dict(self, tz: tzinfo) -> dict:
        return {
            "type": self.kind,
            "from": format_datetime(self.start, tz) if self.start else None,
            "to": format_datetime(self.end, tz) if self.end else None,
        }

    @classmethod
    def from_dict(cls, data: dict, tz: tzinfo) -> OutageWindow:
        kind = data.get("type") or ""
        if not isinstance(kind, str):
            raise ValueError(f"outage type must be a string, was {kind!r}")
        return cls(
            kind=kind,
            start=parse_datetime(data.get("from"), tz),
            end=parse_datetime(data.get("to"), tz),
        )


def outage_changed(previous: OutageWindow | None, current: OutageWindow | None) -> bool:
    """None vs None is unchanged; None vs a window is a change."""
    return previous != current


class OutagePoller(Poller[OutageWindow | None]):
    """Polls the outage schedule for one building."""

    name = "outage"

    def __init__(
        self,
        url: str,
        region: str,
        city: str,
        street: str,
        building: str,
        poll_interval: float,
        failure_backoff: float = DEFAULT_FAILURE_BACKOFF_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        health: HealthChecker | None = None,
        client: httpx.AsyncClient | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        super().__init__(
            poll_interval,
            failure_backoff=failure_backoff,
            timeout=timeout,
            health=health,
            client=client,
        )
        self._url = url
        self._region = region
        self._city = city
        self._street = street
        self._building = building
        self._tz = tz or resolve_timezone(DEFAULT_TIMEZONE)

    async def fetch(self) -> OutageWindow | None:
        params = {"region": self._region, "city": self._city, "street": self._street}
        logger.debug("Pulling emergency outage from %s params=%s", self._url, params)
        data = await self._get_json(self._url, params=params)
        outage = self._parse_building(data)
        logger.debug("Finished pulling emergency outage")
        return outage

    def has_changed(self, previous: OutageWindow | None, current: OutageWindow | None) -> bool:
        return outage_changed(previous, current)

    def describe(self, value: OutageWindow | None) -> str:
        if value is None:
            return "no outage"
        start = format_datetime(value.start, self._tz) if value.start else "?"
        end = format_datetime(value.end, self._tz) if value.end else "?"
        return f"{value.kind or 'outage'} {start} - {end}"

    def _parse_building(self, data: object) -> OutageWindow | None:
        if not isinstance(data, dict):
            raise FetchError(f"failed to decode streets data: expected object, got {type(data).__name__}")
        buildings = data.get("buildings")
        if buildings is None:
            buildings = {}
        if not isinstance(buildings, dict):
            raise FetchError("failed to decode streets data: 'buildings' is not an object")

        if self._building not in buildings:
            raise FetchError(
                f"cannot find required address {self._building!r} "
                f"among {len(buildings)} buildings ({', '.join(sorted(buildings)[:10])})"
            )
        entry = buildings[self._building]
        if not isinstance(entry, dict):
            raise FetchError(f"building {self._building!r} entry is not an object")

        raw = entry.get("outage")
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise FetchError(f"outage for {self._building!r} is not an object: {raw!r}")
        try:
            return OutageWindow.from_dict(raw, self._tz)
        except ValueError as exc:
            raise FetchError(f"failed to decode outage for {self._building!r}: {exc}") from exc
