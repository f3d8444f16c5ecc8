"""JSON file persistence for the grid history ledger.

The file is a JSON array of ``{"state", "from", "to"?}`` objects with
timestamps in ``HH:MM DD.MM.YYYY`` local time. Writes go to ``<path>.tmp``
and are renamed over the real file, so a crash mid-write leaves the
previous snapshot intact.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import tzinfo
from pathlib import Path

from grid_monitor.history.ledger import HistoryItem

logger = logging.getLogger(__name__)


class HistoryStore:
    """Loads and atomically saves history snapshots."""

    def __init__(self, path: Path | str, tz: tzinfo) -> None:
        self._path = Path(path)
        self._tmp_path = self._path.with_name(self._path.name + ".tmp")
        self._tz = tz
        self._write_lock = threading.Lock()
        self._last_revision = -1

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[HistoryItem]:
        """Read the persisted history, or an empty list if it is unusable."""
        try:
            with open(self._path, encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            logger.warning("History file %s not found, starting with empty history", self._path)
            return []
        except (OSError, ValueError) as e:
            logger.error("History file %s read failed, falling back to empty history: %s", self._path, e)
            return []

        if not isinstance(raw, list):
            logger.error(
                "History file %s is not a JSON array, falling back to empty history", self._path,
            )
            return []

        try:
            items = [HistoryItem.from_dict(entry, self._tz) for entry in raw]
        except (TypeError, ValueError, KeyError) as e:
            logger.error("History file %s parse failed, falling back to empty history: %s", self._path, e)
            return []

        problem = _sequence_problem(items)
        if problem:
            logger.error(
                "History file %s is inconsistent (%s), falling back to empty history",
                self._path, problem,
            )
            return []

        logger.info("Loaded %d history entries from %s", len(items), self._path)
        return items

    def save(self, items: list[HistoryItem], revision: int = 0) -> bool:
        """Write ``items`` via temp file + rename.

        Snapshots older than the last written revision are skipped. Returns
        True if the file was written. Raises OSError on failure, leaving the
        previous file untouched.
        """
        payload = json.dumps(
            [item.to_dict(self._tz) for item in items], indent=1, ensure_ascii=False,
        )
        with self._write_lock:
            if revision < self._last_revision:
                logger.debug(
                    "Skipping stale history snapshot r%d (latest written r%d)",
                    revision, self._last_revision,
                )
                return False

            self._path.parent.mkdir(parents=True, exist_ok=True)
            step = f"write history to temp file {self._tmp_path}"
            try:
                with open(self._tmp_path, "w", encoding="utf-8") as f:
                    f.write(payload)
                step = f"rename temp file to history file {self._path}"
                os.replace(self._tmp_path, self._path)
            except OSError as e:
                self._discard_tmp()
                raise OSError(f"cannot {step}: {e}") from e

            self._last_revision = revision
        logger.debug("History snapshot r%d written (%d entries)", revision, len(items))
        return True

    def _discard_tmp(self) -> None:
        try:
            os.unlink(self._tmp_path)
        except OSError:
            logger.debug("Could not remove %s", self._tmp_path)


def _sequence_problem(items: list[HistoryItem]) -> str:
    """Describe why ``items`` cannot seed the ledger, or return ""."""
    for index, (prev, cur) in enumerate(zip(items, items[1:]), start=1):
        if prev.state == cur.state:
            return f"entries {index - 1} and {index} are both {cur.state!r}"
        if prev.is_open:
            return f"entry {index - 1} is open but not last"
    if items and not items[-1].is_open:
        return "last entry is closed"
    return ""
