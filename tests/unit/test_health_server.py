"""
Tests for the health endpoint
"""

import json

import pytest

from moolabot.services.health_server import HealthServer


class StubBot:
    def __init__(self, ready=True, closed=False, latency=0.0421, guilds=1):
        self._ready = ready
        self._closed = closed
        self.latency = latency
        self.guilds = [object()] * guilds

    def is_ready(self):
        return self._ready

    def is_closed(self):
        return self._closed


def test_ready_status():
    status = HealthServer(StubBot()).status()
    assert status == {'status': 'ok', 'ready': True, 'latency_ms': 42.1, 'guilds': 1}


def test_no_heartbeat_yet():
    status = HealthServer(StubBot(latency=float('inf'))).status()
    assert status['ready'] is True
    assert status['latency_ms'] is None


def test_starting_status():
    status = HealthServer(StubBot(ready=False)).status()
    assert status['status'] == 'starting'
    assert status['guilds'] == 0


@pytest.mark.asyncio
async def test_handler_returns_503_until_ready():
    starting = await HealthServer(StubBot(ready=False)).health_handler(None)
    closed = await HealthServer(StubBot(closed=True)).health_handler(None)
    ready = await HealthServer(StubBot()).health_handler(None)

    assert starting.status == 503
    assert closed.status == 503
    assert json.loads(closed.text)['status'] == 'closed'
    assert ready.status == 200


def test_routes_registered():
    app = HealthServer(StubBot()).build_app()
    paths = {resource.canonical for resource in app.router.resources()}
    assert {'/', '/health'} <= paths
