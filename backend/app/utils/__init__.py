"""
工具函数模块
"""
from .token_manager import TokenManager, get_token_manager
from .text_normalize import normalize_note_text, content_hash, clip
from .timezone import now_utc, to_utc_naive, parse_datetime

__all__ = [
    "TokenManager",
    "get_token_manager",
    "normalize_note_text",
    "content_hash",
    "clip",
    "now_utc",
    "to_utc_naive",
    "parse_datetime",
]
