"""Pydantic模式定义"""
from .common import ErrorResponse, HealthResponse
from .capture import (
    VideoItem,
    ThreadContext,
    ExtractedContent,
    ThreadData,
    LinkedContent,
    PlatformData,
    AnalysisResult,
    NoteAnalysisResult,
    CaptureMessage,
    NoteMessage,
    CaptureRecord,
    NoteRecord,
    ContentLinkRecord,
    CaptureRequest,
    CaptureResponse,
    SubmitResult,
    NoteRequest,
    NoteResponse,
    NoteListResponse,
)

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    # Pipeline
    "VideoItem",
    "ThreadContext",
    "ExtractedContent",
    "ThreadData",
    "LinkedContent",
    "PlatformData",
    "AnalysisResult",
    "NoteAnalysisResult",
    # Messages
    "CaptureMessage",
    "NoteMessage",
    # Records
    "CaptureRecord",
    "NoteRecord",
    "ContentLinkRecord",
    # API
    "CaptureRequest",
    "CaptureResponse",
    "SubmitResult",
    "NoteRequest",
    "NoteResponse",
    "NoteListResponse",
]
