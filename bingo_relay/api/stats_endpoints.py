"""
bingo_relay.api.stats_endpoints
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

只读的运行状态接口，对中继核心没有任何副作用。

端点:
  - ``GET /stats``      → 连接数、房间数、运行时长 + 房间明细
  - ``GET /api/rooms``  → 活跃房间列表
"""
from fastapi import APIRouter, Depends

from bingo_relay.api.deps import get_relay_system
from bingo_relay.schemas.api_response import ApiResponse
from bingo_relay.schemas.relay_stats import RelayStatsData, RoomInfoData
from bingo_relay.services.relay_system import RelaySystem

router: APIRouter = APIRouter()


@router.get(
    "/stats",
    summary="中继运行状态",
    response_model=RelayStatsData,
)
async def relay_stats(system: RelaySystem = Depends(get_relay_system)):
    """返回连接总数、房间总数、运行秒数和各房间明细。"""
    return await system.stats()


@router.get(
    "/api/rooms",
    summary="获取活跃房间列表",
    response_model=ApiResponse[list[RoomInfoData]],
)
async def list_rooms(system: RelaySystem = Depends(get_relay_system)):
    """返回所有活跃房间。房间在最后一名成员离开时即被删除。"""
    rooms = await system.state.room_infos()
    return ApiResponse.ok(data=rooms)
