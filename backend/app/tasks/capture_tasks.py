"""
采集相关 Celery 任务

重投递是唯一的重试机制：处理抛出异常时按指数退避重新入队，
编排器在达到最大投递次数时自行转入死信并正常返回
"""
from typing import Any, Dict
import asyncio
import logging

from celery import shared_task

from app.config import settings
from app.core.database import reset_db_engine
from app.core.logging_config import configure_logging
from app.exceptions import ConfigurationError
from app.schemas.capture import CaptureMessage, NoteMessage
from app.services.pipeline import (
    build_note_processor,
    build_orchestrator,
    build_reconciliation_service,
)
from app.services.queue import DEAD_LETTER_TASK, PROCESS_CAPTURE_TASK, PROCESS_NOTE_TASK

logger = logging.getLogger(__name__)


def _run_async(coro):
    # 重置数据库引擎，确保在当前event loop中创建连接
    reset_db_engine()

    # 在 Celery Worker 中，需要显式创建新的事件循环以避免冲突
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _backoff(retries: int) -> int:
    """第 retries 次重试前的等待秒数"""
    return min(
        settings.redelivery_backoff_seconds * (2 ** retries),
        settings.redelivery_backoff_max_seconds
    )


async def _process_capture_async(message: CaptureMessage, attempt: int) -> Dict[str, Any]:
    orchestrator = build_orchestrator()
    record = await orchestrator.process(message, attempt=attempt)
    return {
        "capture_id": message.capture_id,
        "status": record.status if record else "skipped",
        "attempt": attempt,
    }


async def _process_note_async(message: NoteMessage, attempt: int) -> Dict[str, Any]:
    processor = build_note_processor()
    record = await processor.process(message, attempt=attempt)
    return {
        "note_id": message.note_id,
        "status": record.status if record else "skipped",
        "attempt": attempt,
    }


async def _reconcile_async() -> Dict[str, int]:
    return await build_reconciliation_service().requeue_stale_pending()


@shared_task(bind=True, name=PROCESS_CAPTURE_TASK, max_retries=None)
def process_capture(self, payload: Dict[str, Any]):
    """
    处理一条采集消息

    Args:
        payload: camelCase 采集消息
    """
    configure_logging()
    message = CaptureMessage.model_validate(payload)
    attempt = self.request.retries + 1
    try:
        return _run_async(_process_capture_async(message, attempt))
    except ConfigurationError as e:
        # 配置问题重试无意义：记录保持 pending，由对账任务在修复后补发
        logger.error(f"配置错误，放弃处理 capture_id={message.capture_id}: {e} (missing={e.missing})")
        raise
    except Exception as e:
        countdown = _backoff(self.request.retries)
        logger.warning(
            f"采集处理失败，{countdown}s 后重新投递: capture_id={message.capture_id}, "
            f"attempt={attempt}, error={e}"
        )
        raise self.retry(exc=e, countdown=countdown, max_retries=settings.max_delivery_attempts)


@shared_task(bind=True, name=PROCESS_NOTE_TASK, max_retries=None)
def process_note(self, payload: Dict[str, Any]):
    """
    处理一条笔记消息

    Args:
        payload: {noteId, userId, traceId}
    """
    configure_logging()
    message = NoteMessage.model_validate(payload)
    attempt = self.request.retries + 1
    try:
        return _run_async(_process_note_async(message, attempt))
    except ConfigurationError as e:
        logger.error(f"配置错误，放弃处理 note_id={message.note_id}: {e} (missing={e.missing})")
        raise
    except Exception as e:
        countdown = _backoff(self.request.retries)
        logger.warning(
            f"笔记处理失败，{countdown}s 后重新投递: note_id={message.note_id}, "
            f"attempt={attempt}, error={e}"
        )
        raise self.retry(exc=e, countdown=countdown, max_retries=settings.max_delivery_attempts)


@shared_task(name=DEAD_LETTER_TASK)
def dead_letter(envelope: Dict[str, Any]):
    """
    死信消息

    正常部署中没有 worker 消费死信队列，消息在队列中暂存供人工排查；
    显式消费时只记录日志
    """
    configure_logging()
    logger.error(
        f"死信: kind={envelope.get('kind')}, attempts={envelope.get('attempts')}, "
        f"error={envelope.get('error')}, payload={envelope.get('payload')}"
    )
    return envelope


@shared_task(name="app.tasks.capture_tasks.reconcile_pending")
def reconcile_pending():
    """
    对账任务

    每 reconcile_interval_minutes 分钟执行一次
    """
    configure_logging()
    result = _run_async(_reconcile_async())
    logger.info(f"对账任务完成: {result}")
    return result
