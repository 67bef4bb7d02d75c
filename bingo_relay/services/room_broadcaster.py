"""
bingo_relay.services.room_broadcaster
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

尽力而为的帧投递器。

- 每个接收者一次发送尝试，彼此并发，单次发送受 ``send_timeout`` 约束；
- 单个接收者失败（已断开、背压超时）只记日志并丢弃，
  不影响其他接收者，也不会把异常抛回给发送方。
"""
from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from bingo_relay.core.logging import get_logger
from bingo_relay.schemas.frames import OutboundFrame, encode_frame
from bingo_relay.services.registry import Connection, ConnectionState

logger = get_logger(__name__)


class RoomBroadcaster:
    """向一组连接投递帧。

    Attributes:
        send_timeout: 单个接收者的发送超时（秒）。
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout

    async def send(self, conn: Connection, frame: OutboundFrame | dict[str, Any]) -> bool:
        """向单个连接发送一帧，返回是否送达。"""
        return await self._deliver(conn, encode_frame(frame))

    async def broadcast(
        self,
        recipients: Sequence[Connection],
        frame: OutboundFrame | dict[str, Any],
    ) -> int:
        """向 ``recipients`` 快照中的每个连接发送同一帧，返回成功送达数。"""
        if not recipients:
            return 0
        text = encode_frame(frame)
        results = await asyncio.gather(*(self._deliver(conn, text) for conn in recipients))
        return sum(results)

    async def _deliver(self, conn: Connection, text: str) -> bool:
        if conn.state is not ConnectionState.ACTIVE:
            return False
        try:
            await asyncio.wait_for(conn.channel.send_text(text), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("发送超时，丢弃 | to=%s | timeout=%.1fs", conn.id, self.send_timeout)
            return False
        except Exception as e:
            logger.warning("发送失败，丢弃 | to=%s | %s", conn.id, e)
            return False
        return True
