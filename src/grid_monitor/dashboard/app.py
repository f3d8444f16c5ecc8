"""FastAPI application factory for the Grid Monitor dashboard."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.templating import Jinja2Templates

from grid_monitor import __version__
from grid_monitor.aggregator import StateAggregator
from grid_monitor.config.schema import AppConfig
from grid_monitor.resilience.health_check import HealthChecker
from grid_monitor.timezone_utils import Clock

TEMPLATES_DIR = Path(__file__).parent / "templates"

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    aggregator: StateAggregator,
    health: HealthChecker,
    clock: Clock,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Grid Monitor",
        description="Grid availability and outage schedule for one address",
        version=__version__,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request method=%s path=%s status=%d latency_ms=%.1f ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            request.client.host if request.client else "-",
        )
        return response

    @app.middleware("http")
    async def disable_browser_cache(request: Request, call_next):
        response = await call_next(request)
        if request.method in {"GET", "HEAD"}:
            # Force fresh fetches so state changes show up on reload.
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
        return response

    # Live references for route handlers
    app.state.config = config
    app.state.aggregator = aggregator
    app.state.health = health
    app.state.clock = clock

    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
    app.state.templates = templates

    from grid_monitor.dashboard.routes.api import router as api_router
    from grid_monitor.dashboard.routes.overview import router as overview_router

    app.include_router(overview_router)
    app.include_router(api_router, prefix="/api")

    return app
