"""REST API endpoints returning JSON data."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/state")
async def get_state(request: Request) -> dict:
    """Current grid state, outage window, and history."""
    snapshot = request.app.state.aggregator.snapshot()
    return snapshot.to_dict(request.app.state.clock.tz)


@router.get("/health")
async def get_health(request: Request) -> dict:
    """Per-source polling and persistence health."""
    health = request.app.state.health
    return {
        "healthy": health.all_healthy(),
        "unhealthy": health.get_unhealthy(),
        "sources": {name: h.to_dict() for name, h in health.get_all_health().items()},
    }
