"""
Pulseboard - AI 端点健康看板 FastAPI 入口

启动命令:
    uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pulseboard.core import engine, redis_service, settings, setup_logging
from pulseboard.deps.health import build_health_runtime

# 设置日志
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：Redis -> 运行时装配 -> 后台轮询"""
    from pulseboard.core.logging import logger

    logger.info(f"application_startup project={settings.PROJECT_NAME}")
    redis_service.init()

    runtime = build_health_runtime()
    app.state.health = runtime
    await runtime.start()

    yield

    await runtime.stop()
    await redis_service.close()
    await engine.dispose()
    logger.info("application_shutdown")


def create_app() -> FastAPI:
    """创建 FastAPI 应用"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["ETag"],
    )

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    """注册所有 API 路由"""
    from pulseboard.api.metrics_route import router as metrics_router
    from pulseboard.api.v1 import dashboard_router, group_router, internal_router

    api_prefix = settings.API_PREFIX

    app.include_router(dashboard_router, prefix=api_prefix)
    app.include_router(group_router, prefix=api_prefix)
    app.include_router(internal_router, prefix=api_prefix)
    # Metrics / 存活探针
    app.include_router(metrics_router)


# 创建应用实例
app = create_app()


def run():
    """脚本入口点"""
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
