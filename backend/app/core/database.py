"""
数据库连接与会话管理
"""
from typing import Any, AsyncGenerator, Dict, Optional
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.pool import NullPool
from app.config import settings


# 全局引擎和会话工厂（每个进程一份）
_engine: Optional[AsyncEngine] = None
_async_session: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """
    获取数据库引擎

    在Celery worker子进程中会重新创建引擎，避免event loop冲突
    """
    global _engine
    if _engine is None:
        engine_kwargs: Dict[str, Any] = {
            "echo": settings.debug,
            "pool_pre_ping": True,
        }
        if settings.env == "test":
            engine_kwargs["poolclass"] = NullPool
        else:
            engine_kwargs["pool_size"] = settings.db_pool_size
            engine_kwargs["max_overflow"] = settings.db_max_overflow
        _engine = create_async_engine(settings.database_url, **engine_kwargs)
    return _engine


def get_async_session() -> async_sessionmaker:
    """
    获取异步会话工厂

    在Celery worker子进程中会重新创建会话工厂，避免event loop冲突
    """
    global _async_session
    if _async_session is None:
        _async_session = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session


def reset_db_engine():
    """
    重置数据库引擎和会话工厂

    用于Celery任务开始前，确保在新的event loop中创建连接
    """
    global _engine, _async_session

    if _engine is not None:
        # 旧的loop已经不可用，只能同步释放连接池
        _engine.sync_engine.dispose()
        _engine = None

    _async_session = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话依赖

    用于FastAPI依赖注入
    """
    session_maker = get_async_session()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
