"""
消息队列

流水线通过 BaseQueue 发布消息；生产实现基于 Celery（Redis broker），
消息体为 camelCase JSON，附带 sourceType / captureId 头用于路由与统计
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import asyncio
import logging

from celery import Celery

from app.config import settings
from app.exceptions import QueuePublishError
from app.schemas.capture import CaptureMessage, NoteMessage
from app.utils.timezone import now_utc

logger = logging.getLogger(__name__)


PROCESS_CAPTURE_TASK = "app.tasks.capture_tasks.process_capture"
PROCESS_NOTE_TASK = "app.tasks.capture_tasks.process_note"
DEAD_LETTER_TASK = "app.tasks.capture_tasks.dead_letter"


class BaseQueue(ABC):
    """至少一次投递的消息队列"""

    @abstractmethod
    async def publish_capture(self, message: CaptureMessage) -> None:
        """发布采集处理消息，失败抛出 QueuePublishError"""

    @abstractmethod
    async def publish_note(self, message: NoteMessage) -> None:
        """发布笔记处理消息，失败抛出 QueuePublishError"""

    @abstractmethod
    async def publish_dead_letter(
        self,
        kind: str,
        payload: Dict[str, Any],
        error: str,
        attempts: int
    ) -> None:
        """将超过投递上限的消息转入死信队列"""


class CeleryQueue(BaseQueue):
    """基于 Celery send_task 的队列实现"""

    def __init__(self, celery_app: Optional[Celery] = None):
        if celery_app is None:
            from app.tasks.celery_app import app as celery_app
        self.celery_app = celery_app

    async def _send(self, task_name: str, payload: Dict[str, Any], queue: str, headers: Dict[str, str]) -> None:
        try:
            # send_task 会同步连接 broker，放到线程中执行
            await asyncio.to_thread(
                self.celery_app.send_task,
                task_name,
                args=[payload],
                queue=queue,
                headers=headers,
            )
        except Exception as e:
            raise QueuePublishError(f"发送到队列 {queue} 失败: {e}") from e

    async def publish_capture(self, message: CaptureMessage) -> None:
        await self._send(
            PROCESS_CAPTURE_TASK,
            message.to_payload(),
            settings.capture_queue_name,
            {"sourceType": message.source_type, "captureId": message.capture_id},
        )
        logger.info(
            f"采集消息已入队: capture_id={message.capture_id}, "
            f"thread_parent={message.is_thread_parent}, depth={message.thread_depth}"
        )

    async def publish_note(self, message: NoteMessage) -> None:
        await self._send(
            PROCESS_NOTE_TASK,
            message.to_payload(),
            settings.note_queue_name,
            {"sourceType": "note", "noteId": message.note_id},
        )
        logger.info(f"笔记消息已入队: note_id={message.note_id}")

    async def publish_dead_letter(
        self,
        kind: str,
        payload: Dict[str, Any],
        error: str,
        attempts: int
    ) -> None:
        envelope = {
            "kind": kind,
            "payload": payload,
            "error": error,
            "attempts": attempts,
            "failedAt": now_utc().isoformat() + "Z",
        }
        await self._send(
            DEAD_LETTER_TASK,
            envelope,
            settings.dead_letter_queue_name,
            {"sourceType": kind},
        )
        logger.warning(f"消息已转入死信队列: kind={kind}, attempts={attempts}")
