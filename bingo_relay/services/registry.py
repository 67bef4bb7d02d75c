"""
bingo_relay.services.registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

连接注册表：连接 ID 到连接元数据的权威映射。

``Connection`` 对象只由注册表持有；房间目录与消息路由只保存连接 ID。
注册表本身不加锁，并发互斥由 ``RelayState.lock`` 负责。
"""
from __future__ import annotations

import enum
import itertools
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from bingo_relay.core.exceptions import DuplicateIdError
from bingo_relay.core.logging import get_logger
from bingo_relay.schemas.frames import Role, RosterEntry, utc_now

logger = get_logger(__name__)

# 全局递增的接入序号，用于成员列表排序
_join_sequence = itertools.count()


class Channel(Protocol):
    """连接的发送句柄。FastAPI 的 ``WebSocket`` 天然满足此协议。"""

    async def send_text(self, data: str) -> None: ...


class ConnectionState(str, enum.Enum):
    """连接生命周期状态：CONNECTING → ACTIVE → CLOSED（终态）。"""

    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


def generate_connection_id() -> str:
    """生成连接 ID，形如 ``client_<毫秒时间戳>_<9 位随机十六进制>``。"""
    return f"client_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass(eq=False)
class Connection:
    """一个在线客户端会话。

    Attributes:
        id: 连接唯一标识，进程生命周期内不复用。
        name: 已转义的显示名。
        room: 所属房间（整个会话期间不变）。
        role: player / admin / spectator，仅作展示，不影响路由。
        origin: 客户端来源，用于限流和日志。
        channel: 发送句柄。
        joined_at: 注册时间（UTC）。
        seq: 接入序号，单调递增。
        state: 生命周期状态。
    """

    id: str
    name: str
    room: str
    role: Role
    origin: str
    channel: Channel = field(repr=False)
    joined_at: datetime = field(default_factory=utc_now)
    state: ConnectionState = ConnectionState.CONNECTING
    seq: int = field(default_factory=lambda: next(_join_sequence), repr=False)

    def roster_entry(self) -> RosterEntry:
        """转换为成员列表中的一项。"""
        return RosterEntry(
            user_id=self.id,
            name=self.name,
            role=self.role,
            joined_at=self.joined_at,
        )


class ConnectionRegistry:
    """连接 ID → ``Connection`` 的映射，所有操作 O(1)。"""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def register(self, conn: Connection) -> None:
        """登记新连接。

        Raises:
            DuplicateIdError: ID 已存在（不变量被破坏）。
        """
        if conn.id in self._connections:
            logger.error("注册表不变量被破坏：连接 ID 重复 | id=%s", conn.id)
            raise DuplicateIdError(conn.id)
        self._connections[conn.id] = conn

    def lookup(self, conn_id: str) -> Connection | None:
        """按 ID 查找连接。找不到是正常情况（例如消息到达时对方刚断开）。"""
        return self._connections.get(conn_id)

    def remove(self, conn_id: str) -> bool:
        """移除连接，返回该 ID 之前是否存在。"""
        return self._connections.pop(conn_id, None) is not None

    def connections(self) -> list[Connection]:
        """当前所有连接的快照列表。"""
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, conn_id: object) -> bool:
        return conn_id in self._connections
