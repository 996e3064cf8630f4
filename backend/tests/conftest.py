"""
测试公共夹具

所有协作者都有内存替身：存储在每次读写前让出事件循环，
用于覆盖并发提交、并发创建父推文等竞争场景
"""
import asyncio
import os
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

os.environ.setdefault("ENV", "test")
os.environ.setdefault("MEDIA_BACKEND", "local")
os.environ.setdefault("STRUCTURED_LOGGING", "false")

import pytest

from app.exceptions import DuplicateRecordError, MediaError, QueuePublishError
from app.schemas.capture import (
    AnalysisResult,
    CaptureMessage,
    CaptureRecord,
    ContentLinkRecord,
    ExtractedContent,
    LinkedContent,
    NoteAnalysisResult,
    NoteMessage,
    NoteRecord,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
)
from app.services.analysis_service import BaseAnalyzer, BaseNoteAnalyzer
from app.services.embedding_service import BaseEmbedder
from app.services.media_store import BaseMediaStore
from app.services.queue import BaseQueue
from app.services.store.base import CaptureStore, ContentLinkStore, NoteStore
from app.utils.timezone import now_utc


# ========== 存储替身 ==========

class InMemoryCaptureStore(CaptureStore):
    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.status_history: Dict[str, List[str]] = {}
        self.create_calls = 0

    def _record(self, row: Dict[str, Any]) -> CaptureRecord:
        return CaptureRecord.model_validate(row)

    async def create(
        self,
        user_id: str,
        source_url: str,
        normalized_url: str,
        source_type: str,
        platform_data: Optional[Dict[str, Any]] = None,
    ) -> CaptureRecord:
        self.create_calls += 1
        await asyncio.sleep(0)
        for row in self.rows.values():
            if row["user_id"] == user_id and row["normalized_url"] == normalized_url:
                raise DuplicateRecordError(f"duplicate {normalized_url}")
        now = now_utc()
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "source_url": source_url,
            "normalized_url": normalized_url,
            "source_type": source_type,
            "status": STATUS_PENDING,
            "platform_data": dict(platform_data or {}),
            "images": [],
            "videos": [],
            "thread_position": 0,
            "delivery_attempts": 0,
            "captured_at": now,
            "created_at": now,
            "updated_at": now,
        }
        self.rows[row["id"]] = row
        self.status_history[row["id"]] = [STATUS_PENDING]
        return self._record(row)

    async def get_by_id(self, capture_id: str, user_id: Optional[str] = None) -> Optional[CaptureRecord]:
        await asyncio.sleep(0)
        row = self.rows.get(capture_id)
        if row is None or (user_id is not None and row["user_id"] != user_id):
            return None
        return self._record(row)

    async def get_by_normalized_url(self, user_id: str, normalized_url: str) -> Optional[CaptureRecord]:
        await asyncio.sleep(0)
        for row in self.rows.values():
            if row["user_id"] == user_id and row["normalized_url"] == normalized_url:
                return self._record(row)
        return None

    async def update_status(self, capture_id: str, status: str, error_message: Optional[str] = None) -> None:
        await self.update_fields(capture_id, {"status": status, "error_message": error_message})

    async def update_fields(self, capture_id: str, fields: Dict[str, Any]) -> None:
        await asyncio.sleep(0)
        row = self.rows.get(capture_id)
        if row is None:
            return
        row.update(fields)
        row["updated_at"] = now_utc()
        if "status" in fields:
            self.status_history[capture_id].append(fields["status"])

    async def find_by_platform_reference(self, user_id: str, key: str, value: str) -> Optional[CaptureRecord]:
        await asyncio.sleep(0)
        for row in self.rows.values():
            data = row.get("platform_data") or {}
            if row["user_id"] == user_id and key in data and str(data[key]) == str(value):
                return self._record(row)
        return None

    async def list_stale_pending(self, older_than: datetime, limit: int) -> List[CaptureRecord]:
        rows = [
            row for row in self.rows.values()
            if row["status"] == STATUS_PENDING and row["created_at"] < older_than
        ]
        rows.sort(key=lambda r: r["created_at"])
        return [self._record(row) for row in rows[:limit]]


class InMemoryNoteStore(NoteStore):
    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}

    async def create(self, user_id: str, raw_text: str, content_hash: str) -> NoteRecord:
        await asyncio.sleep(0)
        for row in self.rows.values():
            if row["user_id"] == user_id and row["content_hash"] == content_hash:
                raise DuplicateRecordError(f"duplicate {content_hash}")
        now = now_utc()
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "raw_text": raw_text,
            "content_hash": content_hash,
            "status": STATUS_PENDING,
            "processing_attempts": 0,
            "created_at": now,
            "updated_at": now,
        }
        self.rows[row["id"]] = row
        return NoteRecord.model_validate(row)

    async def get_by_id(self, note_id: str, user_id: Optional[str] = None) -> Optional[NoteRecord]:
        await asyncio.sleep(0)
        row = self.rows.get(note_id)
        if row is None or (user_id is not None and row["user_id"] != user_id):
            return None
        return NoteRecord.model_validate(row)

    async def get_by_content_hash(self, user_id: str, content_hash: str) -> Optional[NoteRecord]:
        await asyncio.sleep(0)
        for row in self.rows.values():
            if row["user_id"] == user_id and row["content_hash"] == content_hash:
                return NoteRecord.model_validate(row)
        return None

    async def claim_for_processing(self, note_id: str) -> Optional[NoteRecord]:
        row = self.rows.get(note_id)
        if row is None or row["status"] not in (STATUS_PENDING, STATUS_FAILED):
            return None
        row.update(status=STATUS_PROCESSING, error_message=None)
        row["processing_attempts"] += 1
        return NoteRecord.model_validate(row)

    async def update_status(self, note_id: str, status: str, error_message: Optional[str] = None) -> None:
        await self.update_fields(note_id, {"status": status, "error_message": error_message})

    async def update_fields(self, note_id: str, fields: Dict[str, Any]) -> None:
        row = self.rows.get(note_id)
        if row is not None:
            row.update(fields)

    async def list_notes(
        self,
        user_id: str,
        limit: int = 20,
        status: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> Tuple[List[NoteRecord], Optional[str]]:
        if cursor == "bad":
            raise ValueError("非法的分页游标: bad")
        rows = [
            row for row in self.rows.values()
            if row["user_id"] == user_id and (status is None or row["status"] == status)
        ]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [NoteRecord.model_validate(row) for row in rows[:limit]], None

    async def list_stale_pending(self, older_than: datetime, limit: int) -> List[NoteRecord]:
        rows = [
            row for row in self.rows.values()
            if row["status"] == STATUS_PENDING and row["created_at"] < older_than
        ]
        return [NoteRecord.model_validate(row) for row in rows[:limit]]


class InMemoryLinkStore(ContentLinkStore):
    def __init__(self):
        self.links: Dict[Tuple[str, str], ContentLinkRecord] = {}

    async def record_link(
        self,
        source_content_id: str,
        url: str,
        target_content_id: Optional[str] = None,
        link_type: str = "mentioned",
        status: str = "pending",
        error_message: Optional[str] = None,
    ) -> ContentLinkRecord:
        record = ContentLinkRecord(
            id=str(uuid.uuid4()),
            source_content_id=source_content_id,
            target_content_id=target_content_id,
            url=url,
            link_type=link_type,
            status=status,
            error_message=error_message,
        )
        self.links[(source_content_id, url)] = record
        return record

    async def list_for_source(self, source_content_id: str) -> List[ContentLinkRecord]:
        return [link for (source, _), link in self.links.items() if source == source_content_id]


# ========== 队列替身 ==========

class FakeQueue(BaseQueue):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.captures: List[CaptureMessage] = []
        self.notes: List[NoteMessage] = []
        self.dead_letters: List[Dict[str, Any]] = []

    async def publish_capture(self, message: CaptureMessage) -> None:
        if self.fail:
            raise QueuePublishError("broker unavailable")
        self.captures.append(message)

    async def publish_note(self, message: NoteMessage) -> None:
        if self.fail:
            raise QueuePublishError("broker unavailable")
        self.notes.append(message)

    async def publish_dead_letter(self, kind: str, payload: Dict[str, Any], error: str, attempts: int) -> None:
        self.dead_letters.append({"kind": kind, "payload": payload, "error": error, "attempts": attempts})


# ========== 抓取 / 分析 / 向量替身 ==========

class FakeScraper:
    """按URL返回预设内容，未预设的URL返回通用网页内容"""

    def __init__(self, contents: Optional[Dict[str, ExtractedContent]] = None, error: Optional[Exception] = None):
        self.contents = contents or {}
        self.error = error
        self.calls: List[str] = []

    async def scrape(self, url: str) -> ExtractedContent:
        self.calls.append(url)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if url in self.contents:
            return self.contents[url].model_copy(deep=True)
        return ExtractedContent(title="Example page", description="An example", body_text="Plain article body.")


class FakeLinkScraper:
    """外链抓取替身，failing 中的URL抛出异常"""

    def __init__(self, failing: Tuple[str, ...] = (), delay: float = 0):
        self.failing = set(failing)
        self.delay = delay
        self.calls: List[str] = []

    async def scrape(self, url: str) -> LinkedContent:
        self.calls.append(url)
        await asyncio.sleep(self.delay)
        if url in self.failing:
            raise RuntimeError(f"connection reset: {url}")
        return LinkedContent(url=url, title=f"Title of {url}", body_text="linked body", content_type="article")


class FakeAnalyzer(BaseAnalyzer):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[Tuple[ExtractedContent, str]] = []

    async def analyze(self, content: ExtractedContent, source_type: str, url: Optional[str] = None) -> AnalysisResult:
        self.calls.append((content, source_type))
        if self.error is not None:
            raise self.error
        return AnalysisResult(
            summary="A short summary.",
            topics=["testing", "python"],
            disciplines=["computer science"],
            use_cases=["reference"],
            content_type="post",
        )


class FakeNoteAnalyzer(BaseNoteAnalyzer):
    model_name = "fake-model"

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[str] = []

    async def analyze(self, raw_text: str) -> NoteAnalysisResult:
        self.calls.append(raw_text)
        if self.error is not None:
            raise self.error
        return NoteAnalysisResult(
            cleaned_text=raw_text.strip().capitalize(),
            title="Cleaned note title",
            short_title="Note",
            warnings=["ambiguous acronym"],
        )


class FakeEmbedder(BaseEmbedder):
    def __init__(self, error: Optional[Exception] = None, dimension: int = 4):
        self.error = error
        self.dimension = dimension
        self.texts: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        return [0.1] * self.dimension


class FakeMediaStore(BaseMediaStore):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects: Dict[str, Tuple[bytes, str]] = {}

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise MediaError("bucket unavailable")
        self.objects[key] = (data, content_type)
        return f"https://media.test/{key}"


# ========== 夹具 ==========

@pytest.fixture
def capture_store():
    return InMemoryCaptureStore()


@pytest.fixture
def note_store():
    return InMemoryNoteStore()


@pytest.fixture
def link_store():
    return InMemoryLinkStore()


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def embedder():
    return FakeEmbedder()

