"""
bingo_relay.core.exceptions
~~~~~~~~~~~~~~~~~~~~~~~~~~~

中继服务的异常体系。

- ``FrameError``              → 客户端输入不合法，回复 ``error`` 帧，连接保持
- ``RegistryInvariantError``  → 注册表 / 房间目录不变量被破坏，属于程序缺陷
"""
from __future__ import annotations


class RelayError(Exception):
    """所有中继异常的基类。"""


class FrameError(RelayError):
    """入站帧无法解析或字段不合法。

    Attributes:
        message: 回复给发送方的错误文本（会原样出现在 ``error`` 帧中）。
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RegistryInvariantError(RelayError):
    """注册表与房间目录的一致性被破坏。不应由客户端触发。"""


class DuplicateIdError(RegistryInvariantError):
    """注册了一个已存在的连接 ID。"""

    def __init__(self, conn_id: str) -> None:
        super().__init__(f"连接 ID 重复: {conn_id}")
        self.conn_id = conn_id


class MembershipDesyncError(RegistryInvariantError):
    """连接注册表与房间成员集合不一致。"""
