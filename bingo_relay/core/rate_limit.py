"""
bingo_relay.core.rate_limit
~~~~~~~~~~~~~~~~~~~~~~~~~~~

按来源（客户端 IP）的准入限流。

HTTP 请求与 WebSocket 握手共用同一个 ``OriginRateLimiter``：
每个来源一个固定窗口计数桶，窗口从该来源的第一次请求开始计时，
窗口过期后整桶替换（不做渐进衰减）。窗口边界处的突发可能超过名义速率，
这是固定窗口算法可接受的近似。
"""
from __future__ import annotations

from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from starlette.requests import HTTPConnection

from bingo_relay.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitBucket:
    """某个来源当前窗口的计数快照。

    Attributes:
        count: 当前窗口内已被计入的请求数（不会超过上限）。
        window_reset_at: 窗口结束的 Unix 时间戳（秒）。
    """

    count: int
    window_reset_at: float


class OriginRateLimiter:
    """基于 ``limits`` 内存存储的固定窗口限流器。

    Args:
        max_requests: 每个窗口允许的请求数上限。
        window_seconds: 窗口长度（秒）。
    """

    def __init__(self, max_requests: int = 100, window_seconds: int = 60) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._storage = MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)
        self._item = RateLimitItemPerSecond(max_requests, window_seconds)

    def admit(self, origin: str) -> bool:
        """检查并计入一次来自 ``origin`` 的请求。

        已经超限的来源直接拒绝，不再继续累加计数。

        Returns:
            是否放行。
        """
        admitted = self._strategy.test(self._item, origin) and self._strategy.hit(self._item, origin)
        if not admitted:
            logger.warning("来源超出限流被拒绝 | origin=%s", origin)
        return admitted

    def bucket(self, origin: str) -> RateLimitBucket | None:
        """返回 ``origin`` 当前窗口的计数桶；窗口不存在或已过期时返回 ``None``。"""
        reset_at, remaining = self._strategy.get_window_stats(self._item, origin)
        count = self.max_requests - remaining
        if count <= 0:
            return None
        return RateLimitBucket(count=count, window_reset_at=float(reset_at))

    def reset(self) -> None:
        """清空所有来源的计数桶。"""
        self._storage.reset()


def client_origin(conn: HTTPConnection) -> str:
    """从请求头或对端地址推断客户端来源。

    优先级：``X-Forwarded-For`` 第一项 > ``X-Real-IP`` > 套接字对端 IP > ``"unknown"``。
    ``Request`` 和 ``WebSocket`` 都是 ``HTTPConnection``，两者共用此函数。
    """
    forwarded = conn.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = conn.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if conn.client is not None and conn.client.host:
        return conn.client.host
    return "unknown"
