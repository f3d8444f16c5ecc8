"""Per-task log tagging for the polling loops."""

from __future__ import annotations

from contextlib import AbstractContextManager

import structlog


def source_context(source: str) -> AbstractContextManager:
    """Tag log lines emitted inside the block with ``source=<source>``.

    contextvars are copied per asyncio task, so the tag set by one poller
    never leaks into the other or into request handlers.
    """
    return structlog.contextvars.bound_contextvars(source=source)
