"""
时区工具函数

统一管理项目中的时区处理：数据库中一律存储 UTC 时间（naive datetime）
"""
from datetime import datetime, timedelta
from typing import Optional
import pytz


def now_utc() -> datetime:
    """
    获取当前UTC时间（naive datetime）

    Returns:
        UTC当前时间，不带时区信息
    """
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def to_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """
    将任意datetime转换为UTC naive datetime

    Args:
        dt: naive（视为UTC）或aware datetime

    Returns:
        UTC时间（naive）
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    解析抓取结果中的时间字符串

    支持 ISO 8601 与 Twitter 风格（Wed Oct 10 20:19:24 +0000 2018），解析失败返回 None
    """
    if not value:
        return None
    for parser in (
        lambda v: datetime.fromisoformat(v.replace("Z", "+00:00")),
        lambda v: datetime.strptime(v, "%a %b %d %H:%M:%S %z %Y"),
    ):
        try:
            return to_utc_naive(parser(value))
        except ValueError:
            continue
    return None


def minutes_ago(minutes: int) -> datetime:
    """返回若干分钟前的UTC时间"""
    return now_utc() - timedelta(minutes=minutes)
