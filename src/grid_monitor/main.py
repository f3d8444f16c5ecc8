"""Grid Monitor application entry point and lifecycle orchestrator.

Startup sequence:
  config → clock → health checker → aggregator → history ledger →
  outage poller → grid state poller → dashboard
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from datetime import timedelta
from pathlib import Path

from pydantic import ValidationError

from grid_monitor import __version__, pubsub
from grid_monitor.aggregator import StateAggregator
from grid_monitor.config.manager import ConfigError, ConfigManager
from grid_monitor.config.schema import AppConfig
from grid_monitor.history.ledger import HistoryLedger
from grid_monitor.history.store import HistoryStore
from grid_monitor.logging.structured import setup_logging
from grid_monitor.pollers.base import Poller
from grid_monitor.pollers.grid_state import GridStatePoller
from grid_monitor.pollers.outage import OutagePoller
from grid_monitor.resilience.health_check import HealthChecker
from grid_monitor.timezone_utils import Clock

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2


class Application:
    """Main application lifecycle manager.

    Wires the pollers, the history ledger and the aggregator together and
    owns the single stop event every polling loop waits on.
    """

    def __init__(self, config: AppConfig, config_manager: ConfigManager | None = None) -> None:
        self.config = config
        self.config_manager = config_manager
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()

        self.clock = Clock(config.timezone)
        self.health = HealthChecker(
            max_consecutive_failures=config.resilience.max_consecutive_failures,
        )
        self.aggregator = StateAggregator(address=config.outage.address, version=__version__)
        self.ledger: HistoryLedger | None = None

        # References held for cleanup
        self._pollers: list[Poller] = []
        self._server = None

    async def start(self, serve: bool = True) -> None:
        """Start all application components in dependency order."""
        logger.info("Starting Grid Monitor v%s", __version__)
        self._running = True
        self._stop_event.clear()

        # ── 1. History ledger ────────────────────────────────
        store = HistoryStore(self.config.history.file_path, self.clock.tz)
        ledger = HistoryLedger(
            store,
            window=timedelta(seconds=self.config.history.window_seconds),
            clock=self.clock,
            health=self.health,
        )
        ledger.start([self.aggregator.on_history])
        self.aggregator.on_history(ledger.state())
        self.ledger = ledger

        # ── 2. Pollers ───────────────────────────────────────
        outage_poller, grid_poller = self._create_pollers()
        self._pollers = [outage_poller, grid_poller]

        self._tasks.append(outage_poller.start(
            self._stop_event, [self.aggregator.on_outage],
        ))
        self._tasks.append(grid_poller.start(
            self._stop_event, [ledger.on_history_update(), self.aggregator.on_grid_state],
        ))

        logger.info(
            "Monitoring %s (grid every %ss, outages every %ss, history window %ss)",
            self.config.outage.address,
            self.config.home_assistant.poll_interval_seconds,
            self.config.outage.poll_interval_seconds,
            self.config.history.window_seconds,
        )

        if not serve:
            return

        # ── 3. Dashboard server ──────────────────────────────
        from grid_monitor.dashboard.app import create_app

        app = create_app(self.config, self.aggregator, self.health, self.clock)
        app.state.application = self

        import uvicorn

        uvi_config = uvicorn.Config(
            app,
            host=self.config.dashboard.host,
            port=self.config.dashboard.port,
            log_level="warning",
        )
        server = uvicorn.Server(uvi_config)
        # Keep process signal handling in main() so Ctrl+C behaviour is predictable.
        server.install_signal_handlers = lambda: None
        self._server = server

        logger.info(
            "Dashboard available at http://%s:%d",
            self.config.dashboard.host,
            self.config.dashboard.port,
        )

        # Server.serve() blocks until shutdown
        await server.serve()

    async def stop(self) -> None:
        """Gracefully stop all components in reverse order."""
        if not self._running:
            return

        logger.info("Shutting down Grid Monitor")
        self._running = False
        self._stop_event.set()

        # Tell uvicorn to exit its serve() loop.
        if self._server is not None:
            self._server.should_exit = True

        # Pollers exit on the stop event; cancel anything stuck in a request.
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        # Let in-flight notifications (including history writes) finish.
        await pubsub.drain()

        for poller in self._pollers:
            try:
                await poller.close()
            except Exception:
                logger.exception("Error closing %s poller", poller.name)

        self._server = None
        logger.info("Shutdown complete")

    def _create_pollers(self) -> tuple[OutagePoller, GridStatePoller]:
        ha = self.config.home_assistant
        outage = self.config.outage

        outage_poller = OutagePoller(
            url=outage.status_url,
            region=outage.region,
            city=outage.city,
            street=outage.street,
            building=outage.building,
            poll_interval=outage.poll_interval_seconds,
            failure_backoff=outage.failure_backoff_seconds,
            timeout=outage.timeout_seconds,
            health=self.health,
            tz=self.clock.tz,
        )
        grid_poller = GridStatePoller(
            url=ha.state_url,
            token=ha.token,
            poll_interval=ha.poll_interval_seconds,
            failure_backoff=ha.failure_backoff_seconds,
            timeout=ha.timeout_seconds,
            health=self.health,
        )
        return outage_poller, grid_poller


def load_config(config_manager: ConfigManager) -> AppConfig:
    """Load and validate configuration, raising ConfigError if unusable."""
    try:
        config = config_manager.load()
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e
    missing = config.missing_required()
    if missing:
        raise ConfigError(f"missing required settings: {', '.join(missing)}")
    return config


def main() -> None:
    """Entry point for the application."""
    defaults_path = Path("config.defaults.yaml")
    user_path = Path("config.yaml")

    config_manager = ConfigManager(defaults_path, user_path)
    try:
        config = load_config(config_manager)
    except ConfigError as e:
        print(f"grid-monitor: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    setup_logging(config.logging)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    app = Application(config, config_manager)
    stop_requested = False
    signal_count = 0

    async def _run() -> None:
        try:
            await app.start()
        finally:
            if app._running:
                try:
                    await app.stop()
                except Exception:
                    logger.exception("Error during shutdown")

    def _request_stop() -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(130)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop())
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, lambda *_: _request_stop())

    try:
        loop.run_until_complete(_run())
    except KeyboardInterrupt:
        _request_stop()
        try:
            loop.run_until_complete(app.stop())
        except Exception:
            logger.exception("Error during shutdown")
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
