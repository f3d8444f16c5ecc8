"""Main status page and the static example pages."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse

from grid_monitor import __version__
from grid_monitor.aggregator import PowerState, demo_state
from grid_monitor.timezone_utils import Clock

router = APIRouter()

DEMO_STATES = ("on", "off")


def _format_duration(start: datetime, end: datetime) -> str:
    minutes = max(0, int((end - start).total_seconds() // 60))
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _history_rows(state: PowerState, clock: Clock) -> list[dict]:
    """History entries newest first, with display labels."""
    now = clock.now()
    rows = []
    for item in reversed(state.history):
        rows.append({
            "state": item.state,
            "from": clock.format(item.start),
            "to": clock.format(item.end) if item.end else None,
            "duration": _format_duration(item.start, item.end or now),
        })
    return rows


def _render(request: Request, state: PowerState) -> HTMLResponse:
    templates = request.app.state.templates
    clock: Clock = request.app.state.clock
    current = state.history[-1] if state.history else None
    ongoing = None
    if current is not None and current.is_open and current.state == state.grid:
        ongoing = _format_duration(current.start, clock.now())

    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "state": state,
            "outage": state.outage.to_dict(clock.tz) if state.outage else None,
            "history_rows": _history_rows(state, clock),
            "ongoing": ongoing,
            "refresh_seconds": request.app.state.config.dashboard.refresh_seconds,
        },
    )


@router.get("/", response_class=HTMLResponse)
async def overview(request: Request) -> HTMLResponse:
    return _render(request, request.app.state.aggregator.snapshot())


@router.get("/example/{grid}", response_class=HTMLResponse)
async def example(request: Request, grid: str) -> HTMLResponse:
    if grid not in DEMO_STATES:
        raise HTTPException(status_code=404, detail="Unknown example")
    address = request.app.state.aggregator.snapshot().address
    state = demo_state(grid, address, __version__, request.app.state.clock)
    return _render(request, state)
