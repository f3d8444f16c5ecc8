"""Fire-and-forget fan-out of change notifications to subscriber callbacks."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Handlers receive the published value. They may be plain functions or
# coroutine functions, must tolerate overlapping invocations, and must not
# rely on completing before the next notification is dispatched.
Subscriber = Callable[[T], Awaitable[None] | None]

_pending: set[asyncio.Task] = set()


def dispatch(subscribers: Iterable[Subscriber[T]], value: T, *, source: str = "") -> int:
    """Invoke every subscriber with ``value`` in its own task.

    Returns immediately with the number of tasks scheduled. Must be called
    from a running event loop.
    """
    count = 0
    for handler in subscribers:
        task = asyncio.create_task(
            _invoke(handler, value, source),
            name=f"notify:{source or 'anon'}:{_handler_name(handler)}",
        )
        _pending.add(task)
        task.add_done_callback(_pending.discard)
        count += 1
    return count


async def drain() -> None:
    """Wait for all in-flight notifications to finish."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)


def pending_count() -> int:
    return len(_pending)


async def _invoke(handler: Subscriber[Any], value: Any, source: str) -> None:
    try:
        result = handler(value)
        if inspect.isawaitable(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception(
            "Subscriber %s failed handling %s update", _handler_name(handler), source or "unknown",
        )


def _handler_name(handler: Callable[..., Any]) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)
