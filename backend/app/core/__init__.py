"""核心模块：数据库会话与日志"""
from .database import get_db, get_engine, get_async_session, reset_db_engine
from .logging_config import configure_logging, get_trace_logger

__all__ = [
    "get_db",
    "get_engine",
    "get_async_session",
    "reset_db_engine",
    "configure_logging",
    "get_trace_logger",
]
