"""
采集入口服务

接收URL或笔记提交：校验、归一化、按用户去重、写入 pending 记录并入队。
入队失败只记录日志，不影响提交结果（pending 记录由对账任务补发）
"""
import uuid
import logging
from typing import List, Optional, Tuple

from app.core.logging_config import get_trace_logger
from app.exceptions import DuplicateRecordError, InvalidCaptureError, QueuePublishError
from app.schemas.capture import (
    CaptureMessage,
    CaptureRecord,
    NoteMessage,
    NoteRecord,
    SubmitResult,
)
from app.services.monitoring_service import record_enqueue_failure, record_submission
from app.services.queue import BaseQueue
from app.services.store.base import CaptureStore, NoteStore
from app.utils.text_normalize import normalize_note_text

from .url_rules import detect_source_type, normalize_url, note_content_hash, validate_url

logger = logging.getLogger(__name__)


def _new_trace_id(idempotency_key: Optional[str]) -> str:
    if idempotency_key and idempotency_key.strip():
        return idempotency_key.strip()
    return uuid.uuid4().hex


class IngestionService:
    """采集入口"""

    def __init__(self, capture_store: CaptureStore, note_store: NoteStore, queue: BaseQueue):
        """
        初始化采集入口

        Args:
            capture_store: 采集记录存储
            note_store: 笔记存储
            queue: 消息队列
        """
        self.capture_store = capture_store
        self.note_store = note_store
        self.queue = queue

    # ========== URL 采集 ==========

    async def submit_capture(
        self,
        user_id: str,
        url: str,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> SubmitResult:
        """
        提交URL采集

        Args:
            user_id: 用户ID
            url: 原始URL
            notes: 用户备注
            idempotency_key: 幂等键，作为 traceId 透传

        Returns:
            提交结果；命中已有记录时 existing=True 且不入队

        Raises:
            InvalidCaptureError: URL 非法
        """
        try:
            source_url = validate_url(url)
        except InvalidCaptureError:
            record_submission("capture", "invalid")
            raise

        normalized = normalize_url(source_url)
        source_type = detect_source_type(normalized)
        trace_id = _new_trace_id(idempotency_key)
        log = get_trace_logger(logger, trace_id, user_id=user_id)

        existing = await self.capture_store.get_by_normalized_url(user_id, normalized)
        if existing:
            log.info(f"URL 已采集，返回已有记录: {normalized} -> {existing.id}")
            record_submission("capture", "existing")
            return self._existing_capture(existing, trace_id)

        notes = notes.strip() if notes and notes.strip() else None
        try:
            record = await self.capture_store.create(
                user_id=user_id,
                source_url=source_url,
                normalized_url=normalized,
                source_type=source_type,
                platform_data={"user_notes": notes} if notes else None,
            )
        except DuplicateRecordError:
            # 并发提交同一URL，读取胜出者
            winner = await self.capture_store.get_by_normalized_url(user_id, normalized)
            if winner is None:
                raise
            log.info(f"并发提交同一URL，使用已创建的记录: {winner.id}")
            record_submission("capture", "existing")
            return self._existing_capture(winner, trace_id)

        message = CaptureMessage(
            capture_id=record.id,
            url=normalized,
            source_type=source_type,
            notes=notes,
            user_id=user_id,
            trace_id=trace_id,
        )
        try:
            await self.queue.publish_capture(message)
        except QueuePublishError as e:
            # 记录已写入，保持 pending，由对账任务补发
            log.error(f"采集消息入队失败，记录保持 pending: capture_id={record.id}, error={e}")
            record_enqueue_failure("capture")

        record_submission("capture", "created")
        log.info(f"采集已提交: capture_id={record.id}, source_type={source_type}")
        return SubmitResult(
            id=record.id,
            status=record.status,
            existing=False,
            source_type=source_type,
            trace_id=trace_id,
        )

    @staticmethod
    def _existing_capture(record: CaptureRecord, trace_id: str) -> SubmitResult:
        return SubmitResult(
            id=record.id,
            status=record.status,
            existing=True,
            source_type=record.source_type,
            trace_id=trace_id,
        )

    async def get_capture(self, user_id: str, capture_id: str) -> Optional[CaptureRecord]:
        return await self.capture_store.get_by_id(capture_id, user_id=user_id)

    # ========== 笔记 ==========

    async def submit_note(
        self,
        user_id: str,
        text: str,
        idempotency_key: Optional[str] = None
    ) -> SubmitResult:
        """
        提交笔记

        相同文本（归一化后）重复提交返回已有笔记

        Raises:
            InvalidCaptureError: 文本为空
        """
        normalized = normalize_note_text(text or "")
        if not normalized:
            record_submission("note", "invalid")
            raise InvalidCaptureError("笔记内容不能为空")

        content_hash = note_content_hash(normalized)
        trace_id = _new_trace_id(idempotency_key)
        log = get_trace_logger(logger, trace_id, user_id=user_id)

        existing = await self.note_store.get_by_content_hash(user_id, content_hash)
        if existing:
            log.info(f"相同笔记已存在: {existing.id}")
            record_submission("note", "existing")
            return self._existing_note(existing, trace_id)

        try:
            record = await self.note_store.create(
                user_id=user_id,
                raw_text=text.strip(),
                content_hash=content_hash,
            )
        except DuplicateRecordError:
            winner = await self.note_store.get_by_content_hash(user_id, content_hash)
            if winner is None:
                raise
            log.info(f"并发提交相同笔记，使用已创建的记录: {winner.id}")
            record_submission("note", "existing")
            return self._existing_note(winner, trace_id)

        try:
            await self.queue.publish_note(
                NoteMessage(note_id=record.id, user_id=user_id, trace_id=trace_id)
            )
        except QueuePublishError as e:
            log.error(f"笔记消息入队失败，记录保持 pending: note_id={record.id}, error={e}")
            record_enqueue_failure("note")

        record_submission("note", "created")
        log.info(f"笔记已提交: note_id={record.id}")
        return SubmitResult(
            id=record.id,
            status=record.status,
            existing=False,
            source_type="note",
            trace_id=trace_id,
        )

    @staticmethod
    def _existing_note(record: NoteRecord, trace_id: str) -> SubmitResult:
        return SubmitResult(
            id=record.id,
            status=record.status,
            existing=True,
            source_type="note",
            trace_id=trace_id,
        )

    async def get_note(self, user_id: str, note_id: str) -> Optional[NoteRecord]:
        return await self.note_store.get_by_id(note_id, user_id=user_id)

    async def list_notes(
        self,
        user_id: str,
        limit: int = 20,
        status: Optional[str] = None,
        cursor: Optional[str] = None
    ) -> Tuple[List[NoteRecord], Optional[str]]:
        """
        分页列出笔记（按创建时间倒序）

        Raises:
            InvalidCaptureError: 游标非法
        """
        try:
            return await self.note_store.list_notes(user_id, limit=limit, status=status, cursor=cursor)
        except ValueError as e:
            raise InvalidCaptureError(str(e)) from e
