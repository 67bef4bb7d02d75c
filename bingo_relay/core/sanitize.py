"""
bingo_relay.core.sanitize
~~~~~~~~~~~~~~~~~~~~~~~~~

客户端输入清洗：昵称、房间名、聊天内容统一做 HTML 转义。
"""
from __future__ import annotations

import html
from typing import get_args

from bingo_relay.schemas.frames import Role

_ROLES: tuple[str, ...] = get_args(Role)


def sanitize_input(value: str) -> str:
    """HTML 转义（``& < > " '``），防止内容被前端当作标记渲染。"""
    return html.escape(value, quote=True)


def normalize_role(value: str | None) -> Role:
    """把查询参数中的角色规整为合法角色，未知值回落为 ``player``。"""
    if value in _ROLES:
        return value  # type: ignore[return-value]
    return "player"
