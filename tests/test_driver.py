"""Tests for CDP endpoint discovery and target tracking."""

import asyncio

import httpx
import pytest

from auto_accept.driver import CDPDriver, candidate_ports
from auto_accept.exceptions import ResourceUnavailable
from auto_accept.models import DriverConfig

TARGETS = [
    {"id": "p1", "type": "page", "title": "Agent 1"},
    {"id": "p2", "type": "page", "title": "Agent 2"},
    {"id": "w1", "type": "service_worker"},
]


def _cdp(live_port=9001):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.port != live_port:
            raise httpx.ConnectError("refused", request=request)
        if request.url.path == "/json/version":
            return httpx.Response(200, json={"Browser": "Chrome/120"})
        if request.url.path == "/json/list":
            return httpx.Response(200, json=TARGETS)
        return httpx.Response(404)

    return CDPDriver(ports=[9000, 9001], transport=httpx.MockTransport(handler))


def _config(background):
    return DriverConfig(is_pro=True, is_background_mode=background, poll_interval=1000, ide="Cursor")


def test_candidate_ports_spread_around_base():
    assert candidate_ports(9000, 2) == [9000, 9001, 8999, 9002, 8998]


def test_is_available_finds_live_port():
    assert asyncio.run(_cdp().is_available()) is True
    assert asyncio.run(_cdp(live_port=1234).is_available()) is False


def test_simple_mode_tracks_one_page_background_tracks_all():
    async def scenario():
        driver = _cdp()
        await driver.start(_config(background=False))
        simple = driver.get_connection_count()
        await driver.start(_config(background=True))
        background = driver.get_connection_count()
        overlay = driver.overlay_visible
        await driver.stop()
        await driver.stop()
        return simple, background, overlay, driver.get_connection_count(), driver.overlay_visible

    assert asyncio.run(scenario()) == (1, 2, True, 0, False)


def test_start_without_endpoint_raises_unavailable():
    async def scenario():
        driver = _cdp(live_port=1234)
        with pytest.raises(ResourceUnavailable):
            await driver.start(_config(background=True))
        return driver.get_connection_count()

    assert asyncio.run(scenario()) == 0


def test_pages_picked_up_while_unfocused_count_as_away_actions():
    async def scenario():
        driver = _cdp()
        await driver.start(_config(background=False))
        await driver.set_focus_state(False)
        await driver.start(_config(background=True))
        await driver.start(_config(background=True))
        away = await driver.get_away_actions()
        drained = await driver.get_away_actions()
        await driver.set_focus_state(True)
        await driver.stop()
        await driver.start(_config(background=True))
        return away, drained, await driver.get_away_actions()

    assert asyncio.run(scenario()) == (1, 0, 0)
