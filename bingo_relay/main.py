"""
bingo_relay.main
~~~~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bingo_relay.api import relay_ws, stats_endpoints
from bingo_relay.core.config import settings
from bingo_relay.core.logging import get_logger, setup_logging
from bingo_relay.core.rate_limit import client_origin
from bingo_relay.schemas.api_response import ApiResponse
from bingo_relay.services.relay_system import RelaySystem

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子，仅在 worker 启动/关闭时各执行一次。"""
    # ── 启动 ──
    app.state.relay_system = RelaySystem(settings)
    logger.info(
        "🚀 中继已启动 | env=%s | debug=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
    )
    yield
    # ── 关闭 ──
    logger.info("👋 中继已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="Bingo 房间实时消息中继",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

# ── CORS 中间件 ───────────────────────────────────────────────────────
if settings.allow_cors_all_origins:
    # dev / test 环境：允许所有来源，方便本地调试
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )


# ── HTTP 准入限流 ─────────────────────────────────────────────────────

@app.middleware("http")
async def rate_limit_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """每个 HTTP 请求计入一次来源限流，超限直接返回 429。"""
    system: RelaySystem = request.app.state.relay_system
    if not system.rate_limiter.admit(client_origin(request)):
        response = ApiResponse.fail(msg="Too many requests", code=429)
        return JSONResponse(status_code=429, content=response.model_dump())
    return await call_next(request)


# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(stats_endpoints.router, tags=["Stats"])
app.include_router(relay_ws.router, tags=["WebSocket Relay"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    response = ApiResponse.fail(msg=detail, code=500, data=None)
    return JSONResponse(
        status_code=500,
        content=response.model_dump(),
    )


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> JSONResponse:
    """存活检查，附带连接数、房间数和运行时长。"""
    system: RelaySystem = request.app.state.relay_system
    clients, rooms = await system.state.counts()
    return JSONResponse(
        content={
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "clients": clients,
            "rooms": rooms,
            "uptime": system.uptime,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bingo_relay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
