"""存储层"""
from .base import CaptureStore, NoteStore, ContentLinkStore
from .sql_store import SqlCaptureStore, SqlNoteStore, SqlContentLinkStore, encode_cursor, decode_cursor

__all__ = [
    "CaptureStore",
    "NoteStore",
    "ContentLinkStore",
    "SqlCaptureStore",
    "SqlNoteStore",
    "SqlContentLinkStore",
    "encode_cursor",
    "decode_cursor",
]
