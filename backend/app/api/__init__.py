"""API 路由模块"""
from fastapi import APIRouter
from .v1 import capture, notes, monitoring

# 创建主路由
api_router = APIRouter()

# 注册子路由
api_router.include_router(capture.router, prefix="/capture", tags=["采集"])
api_router.include_router(notes.router, prefix="/notes", tags=["笔记"])
api_router.include_router(monitoring.router, prefix="/monitoring", tags=["监控"])

__all__ = ["api_router"]
