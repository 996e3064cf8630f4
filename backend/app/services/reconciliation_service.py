"""
对账服务

入队失败或消息丢失时记录会一直停留在 pending。
定时扫描超过阈值仍为 pending 的采集和笔记，重新发布处理消息
"""
from typing import Dict, Optional
import logging
import uuid

from app.config import settings
from app.exceptions import QueuePublishError
from app.schemas.capture import CaptureMessage, NoteMessage
from app.services.monitoring_service import record_reconciled
from app.services.queue import BaseQueue
from app.services.store.base import CaptureStore, NoteStore
from app.utils.timezone import minutes_ago

logger = logging.getLogger(__name__)


class ReconciliationService:
    """pending 记录补发"""

    def __init__(self, capture_store: CaptureStore, note_store: NoteStore, queue: BaseQueue):
        self.capture_store = capture_store
        self.note_store = note_store
        self.queue = queue

    async def requeue_stale_pending(
        self,
        older_than_minutes: Optional[int] = None,
        limit: Optional[int] = None
    ) -> Dict[str, int]:
        """
        重新入队卡住的 pending 记录

        Args:
            older_than_minutes: pending 超过多少分钟视为卡住
            limit: 每类记录最多处理条数

        Returns:
            {"captures": n, "notes": m, "failed": k}
        """
        older_than = minutes_ago(older_than_minutes or settings.reconcile_pending_after_minutes)
        limit = limit or settings.reconcile_batch_size
        stats = {"captures": 0, "notes": 0, "failed": 0}

        for capture in await self.capture_store.list_stale_pending(older_than, limit):
            platform_data = capture.platform_data or {}
            depth = int(platform_data.get("threadDepth") or 0)
            message = CaptureMessage(
                capture_id=capture.id,
                url=capture.normalized_url,
                source_type=capture.source_type,
                notes=platform_data.get("user_notes"),
                user_id=capture.user_id,
                trace_id=f"reconcile-{uuid.uuid4().hex}",
                is_thread_parent=depth > 0,
                thread_depth=depth,
            )
            try:
                await self.queue.publish_capture(message)
                stats["captures"] += 1
            except QueuePublishError as e:
                logger.error(f"对账重新入队失败: capture_id={capture.id}, error={e}")
                stats["failed"] += 1

        for note in await self.note_store.list_stale_pending(older_than, limit):
            message = NoteMessage(
                note_id=note.id,
                user_id=note.user_id,
                trace_id=f"reconcile-{uuid.uuid4().hex}",
            )
            try:
                await self.queue.publish_note(message)
                stats["notes"] += 1
            except QueuePublishError as e:
                logger.error(f"对账重新入队失败: note_id={note.id}, error={e}")
                stats["failed"] += 1

        record_reconciled("capture", stats["captures"])
        record_reconciled("note", stats["notes"])
        if any(stats.values()):
            logger.info(f"对账完成: {stats}")
        return stats
