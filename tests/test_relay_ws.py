"""
tests.test_relay_ws
~~~~~~~~~~~~~~~~~~~

``/ws`` 端点集成测试（FastAPI TestClient）。

TestClient 必须以 ``with`` 方式使用，lifespan 才会创建 ``RelaySystem``，
且同一个 client 下的多条 WebSocket 共享一个事件循环。
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from bingo_relay.core.config import settings
from bingo_relay.core.rate_limit import OriginRateLimiter
from bingo_relay.main import app


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


class TestAdmission:

    def test_welcome_on_connect(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?name=Alice&room=r1") as ws:
            welcome = ws.receive_json()

        assert welcome["type"] == "welcome"
        assert welcome["message"] == "Welcome to r1!"
        assert welcome["userId"].startswith("client_")

    def test_defaults_apply_without_query(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "get-users"})
            users = ws.receive_json()

        assert users["type"] == "users"
        assert users["users"][0]["name"] == settings.DEFAULT_NAME
        assert users["users"][0]["role"] == "player"

    def test_name_is_escaped(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?name=<i>Bob</i>") as ws:
            ws.receive_json()
            ws.send_json({"type": "get-users"})
            users = ws.receive_json()

        assert users["users"][0]["name"] == "&lt;i&gt;Bob&lt;/i&gt;"

    def test_rate_limited_origin_is_rejected_before_accept(self, client: TestClient) -> None:
        system = client.app.state.relay_system
        system.rate_limiter = OriginRateLimiter(max_requests=1, window_seconds=60)

        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass

        assert exc_info.value.code == 1013
        assert len(system.state.registry) == 0

    def test_admin_with_wrong_password_is_rejected(self, client: TestClient) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws?role=admin&password=nope"):
                pass

        assert exc_info.value.code == 1008
        assert len(client.app.state.relay_system.state.registry) == 0

    def test_admin_with_correct_password_is_admitted(self, client: TestClient) -> None:
        url = f"/ws?role=admin&name=Host&password={settings.ADMIN_PASSWORD}"
        with client.websocket_connect(url) as ws:
            assert ws.receive_json()["type"] == "welcome"
            ws.send_json({"type": "get-users"})
            assert ws.receive_json()["users"][0]["role"] == "admin"


class TestRelay:

    def test_presence_and_chat_between_two_clients(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?name=A&room=r1") as ws_a:
            a_id = ws_a.receive_json()["userId"]

            with client.websocket_connect("/ws?name=B&room=r1") as ws_b:
                b_id = ws_b.receive_json()["userId"]

                joined = ws_a.receive_json()
                assert joined["type"] == "user-joined"
                assert joined["userId"] == b_id
                assert [u["userId"] for u in joined["users"]] == [a_id, b_id]

                ws_b.send_json({"type": "chat", "message": "hi"})
                assert ws_a.receive_json()["message"] == "hi"
                assert ws_b.receive_json()["message"] == "hi"

            # 紧跟一个 ping：若 user-left 缺失，下一帧会是 pong 而不是一直阻塞
            ws_a.send_json({"type": "ping"})
            left = ws_a.receive_json()
            assert left["type"] == "user-left"
            assert left["userId"] == b_id
            assert [u["userId"] for u in left["users"]] == [a_id]
            assert ws_a.receive_json()["type"] == "pong"

    def test_closed_session_is_removed_before_others_continue(self, client: TestClient) -> None:
        system = client.app.state.relay_system
        with client.websocket_connect("/ws?name=A&room=r1") as ws_a:
            ws_a.receive_json()
            with client.websocket_connect("/ws?name=B&room=r1") as ws_b:
                ws_b.receive_json()
                ws_a.receive_json()  # user-joined

            ws_a.send_json({"type": "get-users"})
            frames = [ws_a.receive_json(), ws_a.receive_json()]

        assert [f["type"] for f in frames] == ["user-left", "users"]
        assert [u["name"] for u in frames[1]["users"]] == ["A"]
        assert len(system.state.registry) == 0

    def test_malformed_frame_keeps_connection_open(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

            ws.send_text("{not json")
            assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}

            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

    def test_disconnect_cleans_up_state(self, client: TestClient) -> None:
        system = client.app.state.relay_system
        with client.websocket_connect("/ws?room=temp") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})
            ws.receive_json()
            assert len(system.state.registry) == 1

        assert len(system.state.registry) == 0
        assert "temp" not in system.state.directory
