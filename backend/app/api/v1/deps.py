"""
API 依赖
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from app.config import settings
from app.exceptions import ConfigurationError
from app.services.ingestion import IngestionService
from app.services.pipeline import build_ingestion_service
from app.services.queue import BaseQueue, CeleryQueue


def get_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """
    当前用户ID

    优先取 X-User-Id 请求头，否则使用 DEFAULT_USER_ID；两者都没有时视为服务配置错误
    """
    user_id = (x_user_id or "").strip() or settings.default_user_id.strip()
    if not user_id:
        raise ConfigurationError(
            "缺少用户标识：请求未带 X-User-Id 且未配置 DEFAULT_USER_ID",
            missing=["DEFAULT_USER_ID"]
        )
    return user_id


@lru_cache()
def get_queue() -> BaseQueue:
    return CeleryQueue()


def get_ingestion_service(queue: BaseQueue = Depends(get_queue)) -> IngestionService:
    return build_ingestion_service(queue=queue)
