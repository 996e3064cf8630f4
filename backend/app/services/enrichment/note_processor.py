"""
笔记处理

认领笔记（pending|failed → processing）→ LLM 清理 → 主题分析 → 向量 → 保存。
已完成或正在处理的笔记直接跳过，失败策略与采集处理一致
"""
from typing import Optional
import asyncio
import logging
import time

from app.config import settings
from app.core.logging_config import get_trace_logger
from app.exceptions import AnalysisError, QueuePublishError
from app.schemas.capture import (
    ExtractedContent,
    NoteMessage,
    NoteRecord,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_FAILED_PERMANENT,
)
from app.services.analysis_service import BaseAnalyzer, BaseNoteAnalyzer
from app.services.embedding_service import BaseEmbedder
from app.services.monitoring_service import record_processing, record_step_failure
from app.services.queue import BaseQueue
from app.services.store.base import NoteStore
from app.utils.timezone import now_utc

from .embedding_text import build_embedding_text
from .orchestrator import describe_error

logger = logging.getLogger(__name__)


class NoteProcessor:
    """笔记处理流水线"""

    def __init__(
        self,
        note_store: NoteStore,
        note_analyzer: BaseNoteAnalyzer,
        analyzer: BaseAnalyzer,
        embedder: Optional[BaseEmbedder] = None,
        queue: Optional[BaseQueue] = None,
        max_delivery_attempts: Optional[int] = None,
    ):
        self.note_store = note_store
        self.note_analyzer = note_analyzer
        self.analyzer = analyzer
        self.embedder = embedder
        self.queue = queue
        self.max_delivery_attempts = max_delivery_attempts or settings.max_delivery_attempts

    async def process(self, message: NoteMessage, attempt: int = 1) -> Optional[NoteRecord]:
        """
        处理一条笔记消息

        Returns:
            处理完成后的笔记；跳过或进入死信时返回 None

        Raises:
            Exception: 终止性失败且未达到最大投递次数
        """
        log = get_trace_logger(logger, message.trace_id, note_id=message.note_id, attempt=attempt)
        started = time.monotonic()

        note = await self.note_store.claim_for_processing(message.note_id)
        if note is None:
            log.info("笔记不存在、已完成或正在处理，跳过")
            record_processing("note", "note", "skipped")
            return None

        try:
            await self._run(note, log)
        except Exception as e:
            error_message = describe_error(e)
            duration = time.monotonic() - started
            if attempt >= self.max_delivery_attempts:
                log.error(f"笔记处理失败且达到最大投递次数 {attempt}，转入死信: {error_message}")
                await self._mark(note.id, STATUS_FAILED_PERMANENT, error_message, log)
                if self.queue is not None:
                    try:
                        await self.queue.publish_dead_letter("note", message.to_payload(), error_message, attempt)
                    except QueuePublishError as publish_error:
                        log.error(f"死信发布失败: {publish_error}")
                record_processing("note", "note", "dead_letter", duration)
                return None
            log.error(f"笔记处理失败（第 {attempt} 次）: {error_message}")
            await self._mark(note.id, STATUS_FAILED, error_message, log)
            record_processing("note", "note", "failed", duration)
            raise

        duration = time.monotonic() - started
        record_processing("note", "note", "complete", duration)
        log.info(f"笔记处理完成，耗时 {duration:.2f}s")
        return await self.note_store.get_by_id(note.id)

    async def _mark(self, note_id: str, status: str, error_message: str, log) -> None:
        try:
            await self.note_store.update_status(note_id, status, error_message)
        except Exception as e:
            log.error(f"写入 {status} 状态失败: {type(e).__name__}: {e}")

    async def _run(self, note: NoteRecord, log) -> None:
        timeout = settings.analyze_timeout_seconds

        # 1. 清理与标题
        try:
            cleaned = await asyncio.wait_for(self.note_analyzer.analyze(note.raw_text), timeout=timeout)
        except asyncio.TimeoutError as e:
            record_step_failure("analyze")
            raise AnalysisError(f"笔记清理超时（{timeout}s）") from e
        if cleaned.warnings:
            log.info(f"笔记清理告警: {cleaned.warnings}")

        # 2. 主题分析（与采集共用分析器）
        content = ExtractedContent(
            title=cleaned.title,
            body_text=cleaned.expanded_text or cleaned.cleaned_text,
        )
        try:
            analysis = await asyncio.wait_for(self.analyzer.analyze(content, "note"), timeout=timeout)
        except asyncio.TimeoutError as e:
            record_step_failure("analyze")
            raise AnalysisError(f"笔记分析超时（{timeout}s）") from e

        # 3. 向量（可选）
        embedding = None
        if self.embedder is not None:
            text = build_embedding_text(
                title=cleaned.title,
                body_text=cleaned.expanded_text or cleaned.cleaned_text,
                summary=analysis.summary,
                topics=analysis.topics,
            )
            try:
                embedding = await asyncio.wait_for(self.embedder.embed(text), timeout=settings.embed_timeout_seconds)
            except Exception as e:
                log.warning(f"笔记向量生成失败，跳过: {type(e).__name__}: {e}")
                record_step_failure("embed")

        # 4. 保存
        fields = {
            "cleaned_text": cleaned.cleaned_text,
            "expanded_text": cleaned.expanded_text,
            "title": cleaned.title,
            "short_title": cleaned.short_title,
            "llm_warnings": cleaned.warnings,
            "llm_model": self.note_analyzer.model_name or None,
            "llm_prompt_version": self.note_analyzer.prompt_version,
            "summary": analysis.summary,
            "topics": analysis.topics,
            "disciplines": analysis.disciplines,
            "use_cases": analysis.use_cases,
            "status": STATUS_COMPLETE,
            "error_message": None,
            "processed_at": now_utc(),
        }
        if embedding is not None:
            fields["embedding"] = embedding
            fields["embedding_generated_at"] = now_utc()
        await self.note_store.update_fields(note.id, fields)
