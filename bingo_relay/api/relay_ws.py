"""
bingo_relay.api.relay_ws
~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 中继端点 ``/ws``。

查询参数:
  - ``name``      显示名（默认 ``Anonymous``）
  - ``room``      房间名（默认 ``bingo_main``）
  - ``role``      player / admin / spectator（默认 player）
  - ``password``  role=admin 时必须提供的管理员口令

准入（在创建任何连接状态之前）:
  - 来源超出限流      → 关闭码 1013 ``Too many requests``
  - 管理员口令错误    → 关闭码 1008 ``Invalid admin password``

每条连接由本协程按到达顺序逐帧处理，结束时（正常断开、异常或取消）
在 ``finally`` 中执行唯一一次 ACTIVE → CLOSED 转换（该转换不受取消影响）。
"""
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from bingo_relay.core.exceptions import RegistryInvariantError
from bingo_relay.core.logging import connection_id_ctx_var, get_logger
from bingo_relay.core.rate_limit import client_origin
from bingo_relay.core.sanitize import normalize_role, sanitize_input
from bingo_relay.services.relay_system import RelaySystem

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.websocket("/ws")
async def websocket_relay_endpoint(
    websocket: WebSocket,
    name: str | None = None,
    room: str | None = None,
    role: str | None = None,
    password: str | None = None,
) -> None:
    """WebSocket 房间中继端点。

    Args:
        websocket: FastAPI WebSocket 连接对象。
        name: 显示名。
        room: 要加入的房间。
        role: 连接角色。
        password: 管理员口令。
    """
    system: RelaySystem = websocket.app.state.relay_system
    origin = client_origin(websocket)

    # ── 准入 ──
    if not system.rate_limiter.admit(origin):
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER, reason="Too many requests")
        return

    conn_role = normalize_role(role)
    if conn_role == "admin" and not system.verify_admin_password(password):
        logger.warning("管理员口令错误，拒绝接入 | origin=%s", origin)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid admin password")
        return

    await websocket.accept()

    try:
        conn = await system.lifecycle.connect(
            websocket,
            name=sanitize_input(name or system.settings.DEFAULT_NAME),
            room=sanitize_input(room or system.settings.DEFAULT_ROOM),
            role=conn_role,
            origin=origin,
        )
    except RegistryInvariantError as e:
        logger.error("连接登记失败: %s | origin=%s", e, origin, exc_info=True)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    token = connection_id_ctx_var.set(conn.id)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await system.router.handle_text(conn.id, raw)
    except WebSocketDisconnect:
        pass  # 正常断开
    except Exception as e:
        logger.error("WebSocket 处理异常: %s | room=%s", e, conn.room, exc_info=True)
    finally:
        try:
            await system.lifecycle.disconnect(conn.id)
        except RegistryInvariantError as e:
            logger.error("断开时发现状态不一致: %s | room=%s", e, conn.room, exc_info=True)
        finally:
            connection_id_ctx_var.reset(token)
