"""Tests for the Home Assistant grid state poller."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from grid_monitor import pubsub
from grid_monitor.pollers.base import FetchError
from grid_monitor.pollers.grid_state import GridStatePoller

URL = "http://ha.test/api/states/binary_sensor.grid"


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _poller(handler, **kwargs) -> GridStatePoller:
    kwargs.setdefault("poll_interval", 60)
    return GridStatePoller(URL, "tok", client=mock_client(handler), **kwargs)


class TestFetch:
    async def test_sends_bearer_token(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"state": "on", "attributes": {}})

        poller = _poller(handler)
        assert await poller.fetch() == "on"
        assert seen == {"auth": "Bearer tok", "url": URL}
        await poller.close()

    @pytest.mark.parametrize("state", ["unavailable", "", None, "ON", ["on"], {"on": True}, 1])
    async def test_invalid_state_is_fetch_error(self, state) -> None:
        poller = _poller(lambda r: httpx.Response(200, json={"state": state}))
        with pytest.raises(FetchError, match="expected on\\|off"):
            await poller.fetch()

    async def test_missing_state_field(self) -> None:
        poller = _poller(lambda r: httpx.Response(200, json={"entity_id": "x"}))
        with pytest.raises(FetchError):
            await poller.fetch()

    async def test_non_200_is_fetch_error(self) -> None:
        poller = _poller(lambda r: httpx.Response(401, json={"message": "unauthorized"}))
        with pytest.raises(FetchError, match="was 401"):
            await poller.fetch()

    async def test_malformed_body_is_fetch_error(self) -> None:
        poller = _poller(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(FetchError, match="decode"):
            await poller.fetch()

    async def test_network_error_is_fetch_error(self) -> None:
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        poller = _poller(handler)
        with pytest.raises(FetchError, match="refused"):
            await poller.fetch()


class TestChangeDetection:
    async def test_first_value_publishes(self) -> None:
        received = []
        poller = _poller(lambda r: httpx.Response(200, json={"state": "on"}))
        poller._subscribers = [received.append]
        assert poller.on_tick("on") is True
        await pubsub.drain()
        assert received == ["on"]
        assert poller.state == "on"

    async def test_same_value_is_noop(self) -> None:
        received = []
        poller = _poller(lambda r: httpx.Response(200, json={"state": "on"}))
        poller._subscribers = [received.append]
        poller.on_tick("on")
        assert poller.on_tick("on") is False
        assert poller.on_tick("off") is True
        await pubsub.drain()
        assert received == ["on", "off"]


class TestLoop:
    async def test_failure_retries_after_backoff_not_interval(self, health) -> None:
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"state": "off"})

        received = []
        poller = _poller(handler, poll_interval=3600, failure_backoff=0.01, health=health)
        stop = asyncio.Event()
        task = poller.start(stop, [received.append])

        for _ in range(200):
            if received:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        await pubsub.drain()

        assert calls == 2
        assert received == ["off"]
        h = health.get_health("grid_state")
        assert h.total_failures == 1
        assert h.consecutive_failures == 0

    async def test_failure_does_not_publish_or_reset_state(self) -> None:
        received = []
        poller = _poller(lambda r: httpx.Response(500), failure_backoff=3600)
        poller.on_tick("on")
        stop = asyncio.Event()
        task = poller.start(stop, [received.append])
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert received == []
        assert poller.state == "on"

    async def test_stop_interrupts_regular_wait(self) -> None:
        poller = _poller(lambda r: httpx.Response(200, json={"state": "on"}), poll_interval=3600)
        stop = asyncio.Event()
        task = poller.start(stop, [])
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        assert task.done()

    async def test_no_polling_after_stop(self) -> None:
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"state": "on"})

        stop = asyncio.Event()
        stop.set()
        poller = _poller(handler)
        await poller.run(stop)
        assert calls == 0
