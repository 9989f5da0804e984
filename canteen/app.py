"""
食堂餐券服务 - 主应用入口
为会员提供按套餐、餐次日历和选餐意向推导的每日餐券

主要功能模块：
- 餐券生成（幂等）、跳餐/取消、领餐、过期清理
- 会员套餐与额度视图
- 按日选餐意向
- 组织餐次时间配置

技术栈：FastAPI + DuckDB + pydantic-settings
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .config.settings import settings
from .core.app_logger import get_logger, setup_logging
from .core.database import db_manager
from .core.error_handler import (
    application_error_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.exceptions import BaseApplicationError

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    setup_logging()
    # 启动时初始化数据库
    try:
        db_manager.init_database()
        logger.info("Database initialized at %s", db_manager.db_path)
    except BaseApplicationError as e:
        # 不要让应用启动失败，允许在运行时重试
        logger.error("Database initialization failed: %s", e.message)

    yield

    db_manager.close()


def create_app() -> FastAPI:
    """创建FastAPI应用"""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="食堂餐券与套餐额度服务API",
        debug=settings.debug,
        lifespan=lifespan
    )

    # 添加中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册异常处理器
    app.add_exception_handler(BaseApplicationError, application_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # 注册路由
    app.include_router(api_router, prefix=settings.api_prefix)

    # 健康检查
    @app.get("/health")
    async def health_check():
        try:
            db_manager.get_connection()
            return {
                "status": "healthy",
                "version": settings.api_version,
                "database": "connected"
            }
        except BaseApplicationError as e:
            return {
                "status": "unhealthy",
                "version": settings.api_version,
                "database": f"error: {e.message}"
            }

    @app.get("/")
    async def root():
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "description": "食堂餐券与套餐额度服务API"
        }

    return app


# 应用实例
app = create_app()
