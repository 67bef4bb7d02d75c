"""
bingo_relay.services.relay_state
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

共享中继状态：连接注册表 + 房间目录 + 一把保护两者的 ``asyncio.Lock``。

加锁约定:
  - 所有读写注册表 / 目录的代码都必须持有 ``lock``；
  - 持锁期间不允许 ``await``（不在锁内发送消息）；
  - 加入 / 离开在同一个临界区内同时修改两张表，外部观察不到中间态。

以下 ``recipients`` / ``members_snapshot`` / ``roster`` / ``check_consistency`` 均要求调用方已持有锁。
"""
from __future__ import annotations

import asyncio

from bingo_relay.core.exceptions import MembershipDesyncError
from bingo_relay.schemas.frames import RosterEntry
from bingo_relay.schemas.relay_stats import RoomInfoData
from bingo_relay.services.directory import RoomDirectory
from bingo_relay.services.registry import Connection, ConnectionRegistry


class RelayState:
    """中继的全部易失状态，进程重启即丢失。

    Attributes:
        registry: 连接注册表。
        directory: 房间目录。
        lock: 同时保护两者的互斥锁。
    """

    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        directory: RoomDirectory | None = None,
    ) -> None:
        self.registry = registry or ConnectionRegistry()
        self.directory = directory or RoomDirectory()
        self.lock = asyncio.Lock()

    def recipients(self, room: str, exclude: str | None = None) -> list[Connection]:
        """解析房间内的在线接收者（可排除一个连接）。"""
        result: list[Connection] = []
        for conn_id in self.directory.members(room):
            if conn_id == exclude:
                continue
            conn = self.registry.lookup(conn_id)
            if conn is not None:
                result.append(conn)
        return result

    def members_snapshot(self, room: str) -> list[Connection]:
        """房间内全部在线连接，按接入先后排序。"""
        return sorted(self.recipients(room), key=lambda c: c.seq)

    def roster(self, room: str) -> list[RosterEntry]:
        """房间当前的成员列表，按接入先后排序。"""
        return [conn.roster_entry() for conn in self.members_snapshot(room)]

    def check_consistency(self) -> None:
        """校验注册表与房间目录的双向一致性。

        Raises:
            MembershipDesyncError: 任一方向不一致。
        """
        for room in self.directory.rooms():
            if not room.members:
                raise MembershipDesyncError(f"空房间未被删除: {room.name}")
            for conn_id in room.members:
                conn = self.registry.lookup(conn_id)
                if conn is None:
                    raise MembershipDesyncError(f"房间 {room.name} 中的 {conn_id} 不在注册表中")
                if conn.room != room.name:
                    raise MembershipDesyncError(
                        f"{conn_id} 在房间 {room.name} 中，但注册表记录为 {conn.room}",
                    )
        for conn in self.registry.connections():
            if conn.id not in self.directory.members(conn.room):
                raise MembershipDesyncError(f"{conn.id} 不在其房间 {conn.room} 的成员集合中")

    async def counts(self) -> tuple[int, int]:
        """返回 (连接数, 房间数)。"""
        async with self.lock:
            return len(self.registry), len(self.directory)

    async def room_infos(self) -> list[RoomInfoData]:
        """所有房间的摘要信息。"""
        async with self.lock:
            return [
                RoomInfoData(
                    name=room.name,
                    client_count=len(room.members),
                    created_at=room.created_at,
                )
                for room in self.directory.rooms()
            ]
