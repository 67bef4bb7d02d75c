"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures：用内存中的假发送句柄代替真实 WebSocket，
使中继核心可以在没有网络的情况下测试。
"""
from __future__ import annotations

import asyncio
import json
import os
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")

from bingo_relay.services.lifecycle import LifecycleManager  # noqa: E402
from bingo_relay.services.message_router import MessageRouter  # noqa: E402
from bingo_relay.services.registry import Connection  # noqa: E402
from bingo_relay.services.relay_state import RelayState  # noqa: E402
from bingo_relay.services.room_broadcaster import RoomBroadcaster  # noqa: E402


class FakeChannel:
    """记录所有发送内容的假 WebSocket。

    Args:
        fail: 每次发送都抛异常（模拟已关闭的连接）。
        hang: 每次发送都挂起（模拟背压 / 无响应的对端）。
        delay: 每次发送前先让出事件循环的秒数，用于制造并发交错。
    """

    def __init__(self, fail: bool = False, hang: bool = False, delay: float | None = None) -> None:
        self.fail = fail
        self.hang = hang
        self.delay = delay
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("WebSocket is not connected")
        if self.hang:
            await asyncio.sleep(3600)
        if self.delay is not None:
            await asyncio.sleep(self.delay)
        self.sent.append(data)

    def frames(self, frame_type: str | None = None) -> list[dict[str, Any]]:
        """已发送的帧（可按 type 过滤）。"""
        decoded = [json.loads(text) for text in self.sent]
        if frame_type is None:
            return decoded
        return [frame for frame in decoded if frame["type"] == frame_type]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture()
def relay_state() -> RelayState:
    return RelayState()


@pytest.fixture()
def broadcaster() -> RoomBroadcaster:
    # 超时设得很短，挂起的对端不会拖慢测试
    return RoomBroadcaster(send_timeout=0.1)


@pytest.fixture()
def lifecycle(relay_state: RelayState, broadcaster: RoomBroadcaster) -> LifecycleManager:
    return LifecycleManager(relay_state, broadcaster)


@pytest.fixture()
def router(relay_state: RelayState, broadcaster: RoomBroadcaster) -> MessageRouter:
    return MessageRouter(relay_state, broadcaster, max_chat_length=500)


@pytest.fixture()
def join(lifecycle: LifecycleManager):
    """返回一个协程函数：接入一条假连接，并清空其欢迎 / 上线消息。"""

    async def _join(
        room: str,
        name: str = "player",
        role: str = "player",
        channel: FakeChannel | None = None,
    ) -> tuple[Connection, FakeChannel]:
        channel = channel or FakeChannel()
        conn = await lifecycle.connect(
            channel, name=name, room=room, role=role, origin="127.0.0.1",
        )
        channel.clear()
        return conn, channel

    return _join
