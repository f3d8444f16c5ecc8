"""structlog pipeline for the monitor's stdout and file logs.

Modules log through plain ``logging.getLogger(__name__)``; every record is
rendered by structlog so the ``source`` bound inside a poller task, the
service name and the version appear on each line.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

from grid_monitor import __version__
from grid_monitor.config.schema import LoggingConfig

SERVICE_NAME = "grid-monitor"

# Per-request and per-poll chatter from these is covered by our own lines.
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def _add_service(_logger: object, _method: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def _renderers(fmt: str) -> list[structlog.types.Processor]:
    if fmt == "console":
        return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def _handlers(log_file: str) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    return handlers


def setup_logging(config: LoggingConfig) -> None:
    """Route all logging through structlog.

    ``config.format`` is "json" for deployments or "console" when run by
    hand; ``config.file`` adds a file next to stdout.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderers(config.format),
        ],
    )

    root = logging.getLogger()
    root.handlers.clear()
    for handler in _handlers(config.file):
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
