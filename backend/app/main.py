"""
Content Capture Backend Main Application

FastAPI 应用主入口
"""
from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.api import api_router
from app.core.logging_config import configure_logging
from app.exceptions import ConfigurationError, InvalidCaptureError
from app.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时执行
    configure_logging()
    logger.info(f"启动 {settings.app_name} v{settings.app_version}")
    logger.info(f"环境: {settings.env}, 调试模式: {settings.debug}")

    # 缺少必需配置时启动失败
    settings.validate_for("api")

    yield

    # 关闭时执行
    logger.info("关闭应用...")


# 创建 FastAPI 应用
app = FastAPI(
    title=settings.app_name,
    description="内容采集与补全服务",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    lifespan=lifespan
)

# CORS 中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, code: str, message: str, request: Request, missing=None) -> JSONResponse:
    body = ErrorResponse(
        code=code,
        message=message,
        request_id=request.headers.get("X-Request-Id") or uuid.uuid4().hex,
        missing=missing,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# ========== 异常处理 ==========

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """配置错误：服务不可用（503），与普通请求失败区分"""
    logger.error(f"服务配置错误: {exc} (missing={exc.missing})")
    return _error(503, "SERVICE_MISCONFIGURED", str(exc), request, missing=exc.missing or None)


@app.exception_handler(InvalidCaptureError)
async def invalid_capture_handler(request: Request, exc: InvalidCaptureError):
    return _error(400, "INVALID_ARGUMENT", str(exc), request)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"未处理的异常: {request.method} {request.url.path}")
    return _error(500, "INTERNAL", "服务内部错误", request)


# 健康检查端点
@app.get("/health")
async def health_check():
    """健康检查"""
    return JSONResponse(
        content={
            "status": "ok",
            "version": settings.app_version,
            "env": settings.env
        }
    )


# 注册 API 路由
app.include_router(api_router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
