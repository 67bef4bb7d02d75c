"""
bingo_relay.services.directory
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间目录：房间名到成员连接 ID 集合的映射。

房间在第一次有人加入时懒创建，成员清空的瞬间即被删除，不存在空房间。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from bingo_relay.schemas.frames import utc_now


@dataclass
class Room:
    """一个房间。

    Attributes:
        name: 房间名（唯一键）。
        members: 成员连接 ID 集合。
        created_at: 创建时间（UTC）。
    """

    name: str
    members: set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=utc_now)


class RoomDirectory:
    """房间名 → ``Room``。"""

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}

    def join(self, room: str, conn_id: str) -> Room:
        """把连接加入房间（房间不存在则创建）。重复加入是幂等的。"""
        target = self._rooms.get(room)
        if target is None:
            target = self._rooms[room] = Room(name=room)
        target.members.add(conn_id)
        return target

    def leave(self, room: str, conn_id: str) -> bool:
        """把连接移出房间，房间变空时一并删除。返回该连接之前是否是成员。"""
        target = self._rooms.get(room)
        if target is None or conn_id not in target.members:
            return False
        target.members.discard(conn_id)
        if not target.members:
            del self._rooms[room]
        return True

    def members(self, room: str) -> tuple[str, ...]:
        """房间成员的时间点快照；房间不存在时返回空元组。"""
        target = self._rooms.get(room)
        if target is None:
            return ()
        return tuple(target.members)

    def get(self, room: str) -> Room | None:
        return self._rooms.get(room)

    def rooms(self) -> list[Room]:
        """当前所有房间的快照列表。"""
        return list(self._rooms.values())

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room: object) -> bool:
        return room in self._rooms
