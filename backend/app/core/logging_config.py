"""
日志配置

结构化模式下每行输出一个 JSON 对象，附带 trace_id / capture_id 等上下文，
便于按一次处理链路检索日志
"""
import json
import logging
import sys
from typing import Any, Dict, MutableMapping, Optional, Tuple

from app.utils.timezone import now_utc


# LogRecord 自带的属性，不应作为上下文字段输出
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

_configured = False


class JsonFormatter(logging.Formatter):
    """单行 JSON 日志格式"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": now_utc().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class TraceLoggerAdapter(logging.LoggerAdapter):
    """把处理链路上下文（trace_id 等）合并进每条日志的 extra"""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(level: Optional[str] = None, structured: Optional[bool] = None) -> None:
    """
    配置根日志器（进程内只生效一次）

    Args:
        level: 日志级别，默认取配置
        structured: 是否输出 JSON，默认取配置
    """
    global _configured
    if _configured:
        return

    from app.config import settings

    level = (level or settings.log_level).upper()
    structured = settings.structured_logging if structured is None else structured

    handler = logging.StreamHandler(sys.stdout)
    if structured:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # 第三方库日志降噪
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)

    _configured = True


def get_trace_logger(logger: logging.Logger, trace_id: Optional[str] = None, **context: Any) -> TraceLoggerAdapter:
    """
    获取带链路上下文的日志器

    Args:
        logger: 模块日志器
        trace_id: 链路ID
        **context: 其他上下文字段（capture_id、note_id 等）
    """
    extra = {k: v for k, v in context.items() if v is not None}
    if trace_id:
        extra["trace_id"] = trace_id
    return TraceLoggerAdapter(logger, extra)
