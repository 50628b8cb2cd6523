import asyncio
from datetime import timedelta

import httpx

from attendly.services.host_agent import HostState, HttpHostBackend, QrHostAgent


def _http(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://attendly.test")


async def _started_event(http: httpx.AsyncClient) -> str:
    res = await http.post("/events", json={"name": "Lecture", "rotation_interval_seconds": 3})
    event_id = res.json()["id"]
    assert (await http.post(f"/events/{event_id}/start")).status_code == 200
    return event_id


def test_agents_host_and_view_over_http(api_app, clock):
    async def scenario():
        async with _http(api_app) as http:
            event_id = await _started_event(http)
            backend = HttpHostBackend(http)
            host = QrHostAgent(backend, event_id, tab_id="tab-a")
            viewer = QrHostAgent(backend, event_id, tab_id="tab-b")

            assert await host.sync() is HostState.HOST
            rotated = await host.rotate()
            assert rotated.expires_at == clock.now() + timedelta(seconds=10)
            assert host.token == rotated.token

            assert await viewer.sync() is HostState.VIEWER
            assert viewer.token == rotated.token
            assert viewer.token_expires_at == rotated.expires_at
            # Only the lease holder may rotate.
            assert await backend.rotate(event_id, "tab-b") is None
            assert await host.heartbeat()
            assert await backend.observe("no-such-event") is None

            release = host.stop()
            assert await release is True
            qr = (await http.get(f"/events/{event_id}/qr")).json()
            assert qr["is_active"] is False
            assert qr["host_id"] is None

    asyncio.run(scenario())


def test_release_can_leave_the_event_running_over_http(api_app):
    async def scenario():
        async with _http(api_app) as http:
            event_id = await _started_event(http)
            host = QrHostAgent(HttpHostBackend(http, stop_on_release=False), event_id, "tab-a")
            assert await host.sync() is HostState.HOST

            assert await host.stop() is True
            qr = (await http.get(f"/events/{event_id}/qr")).json()
            assert qr["is_active"] is True
            assert qr["host_id"] is None

    asyncio.run(scenario())
