"""数据库模型"""
from .base import Base
from .capture import CaptureItem
from .note import Note
from .content_link import ContentLink

__all__ = [
    "Base",
    "CaptureItem",
    "Note",
    "ContentLink",
]
