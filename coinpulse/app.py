"""
FastAPI 主应用入口
路由注册、异常处理、日志配置、服务容器初始化
"""
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.ai_routes import router as ai_router
from .api.alert_routes import router as alert_router
from .api.auth_routes import router as auth_router
from .api.coin_routes import router as coin_router
from .api.market_routes import router as market_router
from .api.watchlist_routes import router as watchlist_router
from .api.websocket import router as ws_router
from .config import Settings, get_settings
from .db import DatabaseManager, ensure_schema
from .services import ServiceContainer

logger = logging.getLogger(__name__)

SERVICE_NAME = "coinpulse"
VERSION = "1.0.0"


def configure_logging(level: str = "INFO", log_dir: str = "logs") -> None:
    """stdout + logs/coinpulse.log"""
    Path(log_dir).mkdir(exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(Path(log_dir) / 'coinpulse.log'), encoding='utf-8')
        ]
    )


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "Invalid request: " + "; ".join(parts)


def register_exception_handlers(app: FastAPI) -> None:
    """所有错误统一返回 {"error": "<message>"}"""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """统一异常处理"""
        logger.error(
            f"Unhandled exception at {request.method} {request.url.path}: {exc}",
            exc_info=True
        )
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def create_app(settings: Optional[Settings] = None, services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    构建应用
    传入 services 时直接使用（测试注入），否则在 lifespan 中连接数据库并构建服务容器
    """
    settings = settings or (services.settings if services is not None else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        if services is not None:
            app.state.services = services
            yield
            return

        logger.info("=" * 60)
        logger.info("🚀 正在启动 CoinPulse API Server...")
        logger.info("=" * 60)

        db = DatabaseManager(settings)
        try:
            logger.info("📊 初始化数据库连接...")
            await db.initialize()
            async with db.pg_connection() as conn:
                await ensure_schema(conn)

            container = ServiceContainer.build(settings, db)
            app.state.services = container
            await container.start()

            logger.info("=" * 60)
            logger.info("🎉 CoinPulse API Server 启动成功！")
            logger.info("=" * 60)
        except Exception as e:
            logger.error(f"❌ 启动失败: {e}", exc_info=True)
            await db.close()
            raise

        yield

        logger.info("🔄 正在关闭 API Server...")
        try:
            await container.stop()
        except Exception as e:
            logger.error(f"❌ 关闭服务时出错: {e}")
        await db.close()
        logger.info("✅ 数据库连接已关闭")

    app = FastAPI(
        title="CoinPulse",
        description="加密货币行情推送、技术分析、告警与 AI 助手 API",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    logger.info("📡 注册API路由...")
    app.include_router(auth_router)
    app.include_router(coin_router)
    app.include_router(market_router)
    app.include_router(watchlist_router)
    app.include_router(alert_router)
    app.include_router(ai_router)
    app.include_router(ws_router)

    @app.get("/api/health", tags=["Health Check"])
    async def health_check(request: Request):
        """健康检查 - 检查数据库和 Redis"""
        container = request.app.state.services
        health_status = {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": VERSION,
            "checks": {},
        }

        try:
            await container.db.pg_pool.fetchval("SELECT 1")
            health_status["checks"]["postgres"] = "connected"
        except Exception as e:
            health_status["checks"]["postgres"] = f"error: {str(e)}"
            health_status["status"] = "degraded"

        try:
            await container.db.redis.ping()
            health_status["checks"]["redis"] = "connected"
        except Exception as e:
            health_status["checks"]["redis"] = f"error: {str(e)}"
            health_status["status"] = "degraded"

        health_status["checks"]["websocketClients"] = len(container.hub)
        return health_status

    return app


def main() -> None:
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        create_app(settings),
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
