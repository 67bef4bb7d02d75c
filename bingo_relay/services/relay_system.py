"""
bingo_relay.services.relay_system
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

中继系统：组装共享状态、限流器、路由与生命周期管理。

不使用模块级单例：在 FastAPI lifespan 中创建并挂载到 ``app.state.relay_system``，
通过 ``bingo_relay.api.deps.get_relay_system`` 注入到接口中。
"""
from __future__ import annotations

import hmac
import time

from bingo_relay.core.config import Settings
from bingo_relay.core.logging import get_logger
from bingo_relay.core.rate_limit import OriginRateLimiter
from bingo_relay.schemas.relay_stats import RelayStatsData
from bingo_relay.services.lifecycle import LifecycleManager
from bingo_relay.services.message_router import MessageRouter
from bingo_relay.services.relay_state import RelayState
from bingo_relay.services.room_broadcaster import RoomBroadcaster

logger = get_logger(__name__)


class RelaySystem:
    """一个进程内的完整中继实例。

    Attributes:
        settings: 配置。
        state: 连接注册表 + 房间目录。
        rate_limiter: 按来源的准入限流器。
        broadcaster: 帧投递器。
        router: 消息路由。
        lifecycle: 生命周期管理。
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.state = RelayState()
        self.rate_limiter = OriginRateLimiter(
            max_requests=settings.RATE_LIMIT_MAX,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )
        self.broadcaster = RoomBroadcaster(send_timeout=settings.SEND_TIMEOUT)
        self.router = MessageRouter(
            self.state, self.broadcaster, max_chat_length=settings.MAX_CHAT_LENGTH,
        )
        self.lifecycle = LifecycleManager(self.state, self.broadcaster)
        self._started_at = time.monotonic()
        logger.info(
            "中继系统已初始化 | rate_limit=%d/%ds | send_timeout=%.1fs",
            settings.RATE_LIMIT_MAX, settings.RATE_LIMIT_WINDOW_SECONDS, settings.SEND_TIMEOUT,
        )

    @property
    def uptime(self) -> int:
        """运行秒数。"""
        return int(time.monotonic() - self._started_at)

    def verify_admin_password(self, password: str | None) -> bool:
        """比对管理员共享口令。"""
        if not password:
            return False
        return hmac.compare_digest(password.encode(), self.settings.ADMIN_PASSWORD.encode())

    async def stats(self) -> RelayStatsData:
        """当前连接数、房间数、运行时长及房间明细。"""
        clients, rooms = await self.state.counts()
        return RelayStatsData(
            clients=clients,
            rooms=rooms,
            uptime=self.uptime,
            room_list=await self.state.room_infos(),
        )
