"""
bingo_relay.schemas.frames
~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 帧模型。所有帧都是带 ``type`` 字段的 JSON 对象。

入站帧在边界处按 ``type`` 判别并校验（pydantic discriminated union）：

- 无法解析 / 不是对象 / 缺少字符串 ``type`` → ``FrameError("Invalid message format")``
- 已知 ``type`` 但字段不合法              → ``FrameError(<该帧类型的错误文本>)``
- 未知 ``type``                            → ``parse_frame`` 返回 ``None``，由调用方忽略

出站帧统一以 camelCase 字段名序列化。
"""
from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Annotated, Any, ClassVar, Literal, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from bingo_relay.core.exceptions import FrameError

INVALID_FORMAT: str = "Invalid message format"

Role = Literal["player", "admin", "spectator"]


def utc_now() -> datetime:
    """当前 UTC 时间（带时区）。"""
    return datetime.now(timezone.utc)


def epoch_millis() -> int:
    """当前 Unix 毫秒时间戳。"""
    return int(time.time() * 1000)


# ── 入站帧 ────────────────────────────────────────────────────────────

class InboundFrame(BaseModel):
    """入站帧基类。``error_message`` 为字段校验失败时回复给发送方的文本。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    error_message: ClassVar[str] = INVALID_FORMAT


class PingFrame(InboundFrame):
    """心跳。"""

    type: Literal["ping"]


class JoinFrame(InboundFrame):
    """加入房间。房间在连接时已确定，此帧不做任何事。"""

    type: Literal["join"]


class BingoNumberFrame(InboundFrame):
    """叫号，号码必须是 1-90 的整数。"""

    error_message: ClassVar[str] = "Invalid bingo number"

    type: Literal["bingo-number"]
    number: StrictInt = Field(..., ge=1, le=90)


class WinnerFrame(InboundFrame):
    """中奖宣告。"""

    type: Literal["winner"]
    win_amount: int | float | None = None


class SignalFrame(InboundFrame):
    """WebRTC 信令帧。除 ``target`` 外的字段对中继不透明，原样转发。"""

    model_config = ConfigDict(extra="allow")

    type: Literal["offer", "answer", "ice-candidate"]
    target: str | None = None


class ChatFrame(InboundFrame):
    """聊天消息。"""

    type: Literal["chat"]
    message: str | None = None


class GetUsersFrame(InboundFrame):
    """查询当前房间成员列表。"""

    type: Literal["get-users"]


InboundFrameUnion = Annotated[
    Union[
        PingFrame,
        JoinFrame,
        BingoNumberFrame,
        WinnerFrame,
        SignalFrame,
        ChatFrame,
        GetUsersFrame,
    ],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrameUnion)

# type 字面量 → 帧模型
FRAME_MODELS: dict[str, type[InboundFrame]] = {
    literal: model
    for model in get_args(get_args(InboundFrameUnion)[0])
    for literal in get_args(model.model_fields["type"].annotation)
}


def parse_frame(raw: str | bytes) -> InboundFrame | None:
    """解析并校验一条入站文本帧。

    Args:
        raw: WebSocket 收到的原始文本。

    Returns:
        校验通过的帧模型；``type`` 未知时返回 ``None``。

    Raises:
        FrameError: 帧格式不合法，``message`` 为应回复给发送方的文本。
    """
    try:
        payload: Any = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise FrameError(INVALID_FORMAT) from None

    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        raise FrameError(INVALID_FORMAT)

    model = FRAME_MODELS.get(payload["type"])
    if model is None:
        return None

    try:
        return _inbound_adapter.validate_python(payload)
    except ValidationError:
        raise FrameError(model.error_message) from None


# ── 出站帧 ────────────────────────────────────────────────────────────

class OutboundFrame(BaseModel):
    """出站帧基类，序列化时使用 camelCase 别名。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_text(self) -> str:
        """序列化为 WebSocket 文本帧。"""
        return self.model_dump_json(by_alias=True)


class RosterEntry(OutboundFrame):
    """房间成员列表中的一项。"""

    user_id: str
    name: str
    role: Role
    joined_at: datetime


class WelcomeFrame(OutboundFrame):
    type: Literal["welcome"] = "welcome"
    message: str
    user_id: str
    timestamp: datetime = Field(default_factory=utc_now)


class PresenceFrame(OutboundFrame):
    """``user-joined`` / ``user-left``，携带变化后的完整成员列表。"""

    type: Literal["user-joined", "user-left"]
    user_id: str
    name: str
    timestamp: datetime = Field(default_factory=utc_now)
    users: list[RosterEntry]


class UsersFrame(OutboundFrame):
    type: Literal["users"] = "users"
    users: list[RosterEntry]
    timestamp: datetime = Field(default_factory=utc_now)


class PongFrame(OutboundFrame):
    type: Literal["pong"] = "pong"
    timestamp: int = Field(default_factory=epoch_millis)


class BingoNumberBroadcast(OutboundFrame):
    type: Literal["bingo-number"] = "bingo-number"
    number: int
    called_by: str
    timestamp: datetime = Field(default_factory=utc_now)


class WinnerBroadcast(OutboundFrame):
    type: Literal["winner"] = "winner"
    user_id: str
    user_name: str
    timestamp: datetime = Field(default_factory=utc_now)
    win_amount: int | float = 0


class ChatBroadcast(OutboundFrame):
    type: Literal["chat"] = "chat"
    user_id: str
    user_name: str
    message: str
    timestamp: datetime = Field(default_factory=utc_now)


class ErrorFrame(OutboundFrame):
    """错误回执，只发给出错的发送方，绝不广播。"""

    type: Literal["error"] = "error"
    message: str


def encode_frame(frame: OutboundFrame | dict[str, Any]) -> str:
    """把出站帧编码为文本。信令帧以 dict 形式透传。"""
    if isinstance(frame, OutboundFrame):
        return frame.to_text()
    return json.dumps(frame, ensure_ascii=False)
