"""
bingo_relay.schemas.relay_stats
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

运行状态相关的响应模型（``/stats``、``/api/rooms``）。
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RoomInfoData(BaseModel):
    """房间摘要信息。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., description="房间名")
    client_count: int = Field(..., description="当前在线连接数")
    created_at: datetime = Field(..., description="房间创建时间")


class RelayStatsData(BaseModel):
    """中继整体运行状态。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    clients: int = Field(..., description="当前连接总数")
    rooms: int = Field(..., description="当前房间总数")
    uptime: int = Field(..., description="进程运行秒数")
    room_list: list[RoomInfoData] = Field(default_factory=list, description="各房间明细")
