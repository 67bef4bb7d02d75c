"""
bingo_relay.services.message_router
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

消息路由：按入站帧类型执行中继策略。

==================  ======================================================
入站 type            策略
==================  ======================================================
ping                只回复发送方 pong
join                忽略（房间在连接时已确定）
bingo-number        广播给房间内除发送方外的所有人
winner              广播给整个房间（含发送方）
offer/answer/...    target=broadcast → 除发送方外全体；否则仅同房间的目标连接
chat                转义、校验长度后广播给整个房间（含发送方）
get-users           只回复发送方当前成员列表
==================  ======================================================

发送方不在注册表中（消息到达时刚好断开）时，帧被静默丢弃。
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from bingo_relay.core.exceptions import FrameError
from bingo_relay.core.logging import get_logger
from bingo_relay.core.sanitize import sanitize_input
from bingo_relay.schemas.frames import (
    BingoNumberBroadcast,
    BingoNumberFrame,
    ChatBroadcast,
    ChatFrame,
    ErrorFrame,
    GetUsersFrame,
    InboundFrame,
    JoinFrame,
    OutboundFrame,
    PingFrame,
    PongFrame,
    SignalFrame,
    UsersFrame,
    WinnerBroadcast,
    WinnerFrame,
    parse_frame,
)
from bingo_relay.services.registry import Connection
from bingo_relay.services.relay_state import RelayState
from bingo_relay.services.room_broadcaster import RoomBroadcaster

logger = get_logger(__name__)

Handler = Callable[[Connection, list[Connection], Any], Awaitable[None]]


class MessageRouter:
    """把入站帧分发到对应的处理方法。

    Args:
        state: 共享中继状态。
        broadcaster: 帧投递器。
        max_chat_length: 聊天内容（转义后）最大长度。
    """

    def __init__(
        self,
        state: RelayState,
        broadcaster: RoomBroadcaster,
        max_chat_length: int = 500,
    ) -> None:
        self.state = state
        self.broadcaster = broadcaster
        self.max_chat_length = max_chat_length
        self._handlers: dict[type[InboundFrame], Handler] = {
            PingFrame: self._on_ping,
            JoinFrame: self._on_join,
            BingoNumberFrame: self._on_bingo_number,
            WinnerFrame: self._on_winner,
            SignalFrame: self._on_signal,
            ChatFrame: self._on_chat,
            GetUsersFrame: self._on_get_users,
        }

    async def handle_text(self, sender_id: str, raw: str | bytes) -> None:
        """解析一条原始入站帧并路由。格式错误时只给发送方回 ``error``。"""
        try:
            frame = parse_frame(raw)
        except FrameError as e:
            logger.debug("入站帧不合法 | from=%s | %s", sender_id, e.message)
            await self.reply_error(sender_id, e.message)
            return
        if frame is None:
            logger.info("忽略未知消息类型 | from=%s", sender_id)
            return
        await self.route(sender_id, frame)

    async def route(self, sender_id: str, frame: InboundFrame) -> None:
        """按帧类型执行中继策略。

        发送方与其房间成员快照在同一个临界区内解析，之后释放锁再发送。
        """
        async with self.state.lock:
            sender = self.state.registry.lookup(sender_id)
            members = self.state.members_snapshot(sender.room) if sender is not None else []
        if sender is None:
            logger.debug("发送方已断开，丢弃消息 | from=%s | type=%s", sender_id, frame.type)
            return

        handler = self._handlers.get(type(frame))
        if handler is None:
            logger.info("没有对应的处理器，忽略 | type=%s", frame.type)
            return
        logger.debug("收到消息 | from=%s | type=%s", sender_id, frame.type)
        await handler(sender, members, frame)

    async def reply_error(self, conn_id: str, message: str) -> None:
        """只向 ``conn_id`` 回复一条 ``error`` 帧。"""
        async with self.state.lock:
            conn = self.state.registry.lookup(conn_id)
        if conn is not None:
            await self.broadcaster.send(conn, ErrorFrame(message=message))

    async def broadcast_to_room(
        self,
        room: str,
        frame: OutboundFrame | dict[str, Any],
        exclude: str | None = None,
    ) -> int:
        """向房间成员快照广播，返回成功送达数。"""
        async with self.state.lock:
            recipients = self.state.recipients(room, exclude=exclude)
        return await self.broadcaster.broadcast(recipients, frame)

    # ── 各类型处理 ────────────────────────────────────────────────────
    # members: 发送方所在房间的成员快照（含发送方，按接入先后排序）

    async def _on_ping(self, sender: Connection, members: list[Connection], frame: PingFrame) -> None:
        await self.broadcaster.send(sender, PongFrame())

    async def _on_join(self, sender: Connection, members: list[Connection], frame: JoinFrame) -> None:
        pass

    async def _on_bingo_number(
        self, sender: Connection, members: list[Connection], frame: BingoNumberFrame,
    ) -> None:
        await self.broadcaster.broadcast(
            _excluding(members, sender),
            BingoNumberBroadcast(number=frame.number, called_by=sender.name),
        )
        logger.info("叫号 | room=%s | by=%s | number=%d", sender.room, sender.name, frame.number)

    async def _on_winner(self, sender: Connection, members: list[Connection], frame: WinnerFrame) -> None:
        await self.broadcaster.broadcast(
            members,
            WinnerBroadcast(
                user_id=sender.id,
                user_name=sender.name,
                win_amount=frame.win_amount or 0,
            ),
        )
        logger.info("中奖宣告 | room=%s | winner=%s", sender.room, sender.name)

    async def _on_signal(self, sender: Connection, members: list[Connection], frame: SignalFrame) -> None:
        target = frame.target
        if not target:
            return
        payload = {**frame.model_dump(by_alias=True), "from": sender.id}

        if target == "broadcast":
            await self.broadcaster.broadcast(_excluding(members, sender), payload)
            return

        peer = next((conn for conn in members if conn.id == target), None)
        if peer is None:
            # 目标不存在或不在同一房间：预期内的竞态，静默丢弃
            logger.debug("信令目标不可达，丢弃 | from=%s | target=%s", sender.id, target)
            return
        await self.broadcaster.send(peer, payload)

    async def _on_chat(self, sender: Connection, members: list[Connection], frame: ChatFrame) -> None:
        text = sanitize_input(frame.message or "")
        if len(text) > self.max_chat_length:
            await self.broadcaster.send(sender, ErrorFrame(message="Message too long"))
            return
        await self.broadcaster.broadcast(
            members,
            ChatBroadcast(user_id=sender.id, user_name=sender.name, message=text),
        )

    async def _on_get_users(
        self, sender: Connection, members: list[Connection], frame: GetUsersFrame,
    ) -> None:
        await self.broadcaster.send(
            sender, UsersFrame(users=[conn.roster_entry() for conn in members]),
        )


def _excluding(members: list[Connection], sender: Connection) -> list[Connection]:
    return [conn for conn in members if conn.id != sender.id]
