"""
tests.test_stats_endpoints
~~~~~~~~~~~~~~~~~~~~~~~~~~

``/health``、``/stats``、``/api/rooms`` 与 HTTP 限流中间件测试。
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from bingo_relay.core.rate_limit import OriginRateLimiter
from bingo_relay.main import app


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


def test_health_on_idle_relay(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["clients"] == 0
    assert body["rooms"] == 0
    assert isinstance(body["uptime"], int)


def test_stats_reflect_live_connections(client: TestClient) -> None:
    with client.websocket_connect("/ws?room=r1") as ws_a, client.websocket_connect("/ws?room=r1") as ws_b:
        ws_a.receive_json()
        ws_b.receive_json()

        body = client.get("/stats").json()

    assert body["clients"] == 2
    assert body["rooms"] == 1
    assert isinstance(body["uptime"], int)
    assert len(body["roomList"]) == 1
    assert body["roomList"][0]["name"] == "r1"
    assert body["roomList"][0]["clientCount"] == 2
    assert "createdAt" in body["roomList"][0]


def test_list_rooms_uses_api_response(client: TestClient) -> None:
    with client.websocket_connect("/ws?room=lobby") as ws:
        ws.receive_json()
        body = client.get("/api/rooms").json()

    assert body["code"] == 200
    assert body["msg"] == "success"
    assert [room["name"] for room in body["data"]] == ["lobby"]


def test_http_requests_are_rate_limited(client: TestClient) -> None:
    client.app.state.relay_system.rate_limiter = OriginRateLimiter(max_requests=2, window_seconds=60)

    assert client.get("/health").status_code == 200
    assert client.get("/health").status_code == 200

    response = client.get("/health")
    assert response.status_code == 429
    assert response.json() == {"code": 429, "data": None, "msg": "Too many requests"}
