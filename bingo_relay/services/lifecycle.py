"""
bingo_relay.services.lifecycle
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

连接生命周期管理：驱动 CONNECTING → ACTIVE → CLOSED 状态机。

``connect``:
  1. 注册表登记 + 房间目录加入（同一临界区）
  2. 给新连接发 ``welcome``
  3. 给房间内其他成员发 ``user-joined``（带完整成员列表，不发给自己）

``disconnect``:
  1. 房间目录移出 + 注册表移除（同一临界区）
  2. 给剩余成员发 ``user-left``（带更新后的成员列表）

同一连接的 ``disconnect`` 只生效一次，重复调用是无操作；
即使调用它的协程正在被取消，这次转换也会完整执行。
"""
from __future__ import annotations

import anyio

from bingo_relay.core.exceptions import MembershipDesyncError
from bingo_relay.core.logging import get_logger
from bingo_relay.schemas.frames import PresenceFrame, Role, WelcomeFrame
from bingo_relay.services.registry import (
    Channel,
    Connection,
    ConnectionState,
    generate_connection_id,
)
from bingo_relay.services.relay_state import RelayState
from bingo_relay.services.room_broadcaster import RoomBroadcaster

logger = get_logger(__name__)


class LifecycleManager:
    """编排连接的接入与断开。"""

    def __init__(self, state: RelayState, broadcaster: RoomBroadcaster) -> None:
        self.state = state
        self.broadcaster = broadcaster

    async def connect(
        self,
        channel: Channel,
        *,
        name: str,
        room: str,
        role: Role,
        origin: str,
    ) -> Connection:
        """登记一个已通过准入的连接并发送欢迎与上线通知。

        Args:
            channel: 已完成握手的发送句柄。
            name: 已转义的显示名。
            room: 已转义的房间名。
            role: 连接角色。
            origin: 客户端来源。

        Returns:
            新建的 ``Connection``（状态为 ACTIVE）。

        Raises:
            DuplicateIdError: 生成的 ID 与现存连接冲突（不应发生）。
        """
        conn = Connection(
            id=generate_connection_id(),
            name=name,
            room=room,
            role=role,
            origin=origin,
            channel=channel,
        )
        async with self.state.lock:
            self.state.registry.register(conn)
            self.state.directory.join(conn.room, conn.id)
            conn.state = ConnectionState.ACTIVE
            roster = self.state.roster(conn.room)
            others = self.state.recipients(conn.room, exclude=conn.id)
            online = len(roster)

        logger.info(
            "客户端已接入 | id=%s | name=%s | room=%s | role=%s | origin=%s | 在线: %d",
            conn.id, conn.name, conn.room, conn.role, conn.origin, online,
        )

        try:
            await self.broadcaster.send(
                conn,
                WelcomeFrame(message=f"Welcome to {conn.room}!", user_id=conn.id),
            )
            await self.broadcaster.broadcast(
                others,
                PresenceFrame(type="user-joined", user_id=conn.id, name=conn.name, users=roster),
            )
        except BaseException:
            # 调用方拿不到 conn 就不会再断开它，这里回滚登记
            await self.disconnect(conn.id)
            raise
        return conn

    async def disconnect(self, conn_id: str) -> bool:
        """执行 ACTIVE → CLOSED 转换。

        整个转换在屏蔽取消的作用域内完成：连接协程被取消时，
        ``finally`` 中的这次调用依然会等到锁、移除状态并发出 ``user-left``。

        Returns:
            本次调用是否真正执行了转换；连接不存在或已关闭时返回 ``False``。

        Raises:
            MembershipDesyncError: 连接不在其登记的房间中。此时清理已完成。
        """
        with anyio.CancelScope(shield=True):
            async with self.state.lock:
                conn = self.state.registry.lookup(conn_id)
                if conn is None or conn.state is ConnectionState.CLOSED:
                    return False
                in_room = self.state.directory.leave(conn.room, conn.id)
                self.state.registry.remove(conn.id)
                conn.state = ConnectionState.CLOSED
                roster = self.state.roster(conn.room)
                remaining = self.state.recipients(conn.room)

            logger.info("客户端已断开 | id=%s | room=%s | 房间剩余: %d", conn.id, conn.room, len(remaining))

            await self.broadcaster.broadcast(
                remaining,
                PresenceFrame(type="user-left", user_id=conn.id, name=conn.name, users=roster),
            )

        if not in_room:
            raise MembershipDesyncError(f"连接 {conn.id} 不在其房间 {conn.room} 的成员集合中")
        return True
