"""Timezone resolution, the local clock, and the wall-clock timestamp format."""

from __future__ import annotations

from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Europe/Kyiv"

# Rendered as "15:04 02.01.2006"; minute precision.
DATETIME_FORMAT = "%H:%M %d.%m.%Y"


def resolve_timezone(tz_name: str) -> tzinfo:
    """Resolve an IANA timezone name.

    The zone database comes from the host or, failing that, the ``tzdata``
    package. Unknown names raise ValueError.
    """
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone {tz_name!r}") from e


class Clock:
    """Supplies the current time in one fixed civil timezone.

    Every timestamp the service produces goes through a Clock, so history
    entries share a local-time basis regardless of the host timezone.
    """

    def __init__(self, tz: tzinfo | str = DEFAULT_TIMEZONE) -> None:
        self._tz = resolve_timezone(tz) if isinstance(tz, str) else tz

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def format(self, dt: datetime) -> str:
        return format_datetime(dt, self._tz)

    def parse(self, text: str | None) -> datetime | None:
        return parse_datetime(text, self._tz)


def format_datetime(dt: datetime, tz: tzinfo) -> str:
    """Render ``dt`` as local wall-clock time in ``tz``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(tz).strftime(DATETIME_FORMAT)


def parse_datetime(text: str | None, tz: tzinfo) -> datetime | None:
    """Parse a ``HH:MM DD.MM.YYYY`` string as local time in ``tz``.

    Empty strings and None mean "no timestamp". Malformed text raises
    ValueError.
    """
    if text is None:
        return None
    if not isinstance(text, str):
        raise ValueError(f"expected timestamp string, got {type(text).__name__}")
    text = text.strip()
    if not text:
        return None
    return datetime.strptime(text, DATETIME_FORMAT).replace(tzinfo=tz)
