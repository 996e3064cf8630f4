"""
采集处理编排

一条消息对应一次处理，步骤固定为：
抓取 → 父推文解析 → 补全（线程全文与外链并发）→ 媒体 → 分析 → 向量 → 保存

抓取和分析失败终止处理：记录置为 failed 并重新抛出，由队列重投递；
达到最大投递次数时置为 failed_permanent 并转入死信队列，不再抛出。
外链、媒体、向量失败只记录日志，处理继续
"""
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import logging
import time

from app.config import settings
from app.core.logging_config import get_trace_logger
from app.exceptions import AnalysisError, QueuePublishError, ScrapeError
from app.schemas.capture import (
    AnalysisResult,
    CaptureMessage,
    CaptureRecord,
    ExtractedContent,
    LinkedContent,
    PlatformData,
    SOCIAL_SOURCE_TYPES,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_FAILED_PERMANENT,
    STATUS_PROCESSING,
    ThreadData,
)
from app.services.analysis_service import BaseAnalyzer
from app.services.embedding_service import BaseEmbedder
from app.services.monitoring_service import record_processing, record_step_failure
from app.services.queue import BaseQueue
from app.services.store.base import CaptureStore
from app.utils.timezone import now_utc, to_utc_naive

from .embedding_text import build_embedding_text
from .links import LinkEnricher
from .media import MediaProcessor
from .thread_linker import ThreadLinker, ThreadLinkResult

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> str:
    """异常转为可读的错误信息"""
    message = str(exc).strip()
    return message or type(exc).__name__


class EnrichmentOrchestrator:
    """采集处理流水线"""

    def __init__(
        self,
        capture_store: CaptureStore,
        scrapers,
        analyzer: BaseAnalyzer,
        embedder: Optional[BaseEmbedder] = None,
        media_processor: Optional[MediaProcessor] = None,
        thread_linker: Optional[ThreadLinker] = None,
        thread_resolver=None,
        link_enricher: Optional[LinkEnricher] = None,
        queue: Optional[BaseQueue] = None,
        max_delivery_attempts: Optional[int] = None,
    ):
        """
        Args:
            capture_store: 采集记录存储
            scrapers: 按来源类型选择爬虫（get(source_type) -> scraper）
            analyzer: 内容分析
            embedder: 向量生成，为空时跳过
            media_processor: 媒体持久化，为空时保留原始URL
            thread_linker: 父推文解析，为空时不关联线程
            thread_resolver: 线程全文获取（fetch(tweet_id, handle) -> ThreadData）
            link_enricher: 外链抓取，为空时跳过
            queue: 死信队列发布
            max_delivery_attempts: 最大投递次数
        """
        self.capture_store = capture_store
        self.scrapers = scrapers
        self.analyzer = analyzer
        self.embedder = embedder
        self.media_processor = media_processor
        self.thread_linker = thread_linker
        self.thread_resolver = thread_resolver
        self.link_enricher = link_enricher
        self.queue = queue
        self.max_delivery_attempts = max_delivery_attempts or settings.max_delivery_attempts

    # ========== 入口 ==========

    async def process(self, message: CaptureMessage, attempt: int = 1) -> Optional[CaptureRecord]:
        """
        处理一条采集消息

        Args:
            message: 采集消息
            attempt: 第几次投递（从 1 开始）

        Returns:
            处理完成后的记录；记录不存在或进入死信时返回 None

        Raises:
            Exception: 终止性失败且未达到最大投递次数，交给队列重投递
        """
        log = get_trace_logger(logger, message.trace_id, capture_id=message.capture_id, attempt=attempt)
        started = time.monotonic()

        capture = await self.capture_store.get_by_id(message.capture_id)
        if capture is None:
            log.warning(f"采集记录不存在，丢弃消息: {message.capture_id}")
            record_processing("capture", message.source_type, "skipped")
            return None

        log.info(f"开始处理采集: {message.url} ({message.source_type})")
        try:
            await self.capture_store.update_fields(capture.id, {
                "status": STATUS_PROCESSING,
                "error_message": None,
                "delivery_attempts": attempt,
            })
            fields = await self._run_pipeline(capture, message, log)
            await self.capture_store.update_fields(capture.id, fields)
        except Exception as e:
            error_message = describe_error(e)
            duration = time.monotonic() - started
            if attempt >= self.max_delivery_attempts:
                log.error(f"采集处理失败且达到最大投递次数 {attempt}，转入死信: {error_message}")
                await self._mark(capture.id, STATUS_FAILED_PERMANENT, error_message, log)
                await self._dead_letter(message, error_message, attempt, log)
                record_processing("capture", message.source_type, "dead_letter", duration)
                return None
            log.error(f"采集处理失败（第 {attempt} 次）: {error_message}")
            await self._mark(capture.id, STATUS_FAILED, error_message, log)
            record_processing("capture", message.source_type, "failed", duration)
            raise

        duration = time.monotonic() - started
        record_processing("capture", message.source_type, "complete", duration)
        log.info(f"采集处理完成，耗时 {duration:.2f}s")
        return await self.capture_store.get_by_id(capture.id)

    async def _mark(self, capture_id: str, status: str, error_message: str, log) -> None:
        # 状态写入失败不能掩盖原始异常
        try:
            await self.capture_store.update_status(capture_id, status, error_message)
        except Exception as e:
            log.error(f"写入 {status} 状态失败: {type(e).__name__}: {e}")

    async def _dead_letter(self, message: CaptureMessage, error_message: str, attempt: int, log) -> None:
        if self.queue is None:
            return
        try:
            await self.queue.publish_dead_letter("capture", message.to_payload(), error_message, attempt)
        except QueuePublishError as e:
            log.error(f"死信发布失败: {e}")

    # ========== 流水线 ==========

    async def _run_pipeline(self, capture: CaptureRecord, message: CaptureMessage, log) -> Dict[str, Any]:
        source_type = message.source_type
        is_social = source_type in SOCIAL_SOURCE_TYPES

        # 1. 抓取
        content = await self._scrape(message)
        log.info(f"抓取完成: title={content.title!r}, images={len(content.images)}, videos={len(content.videos)}")

        # 2. 父推文解析
        link = ThreadLinkResult()
        if is_social and self.thread_linker and content.thread_context and content.thread_context.is_thread_continuation:
            link = await self.thread_linker.resolve_parent(capture, content, message)

        # 3. 补全：线程全文与外链并发
        platform = PlatformData.model_validate(content.platform_data or {})
        if is_social:
            thread_data, linked_content = await asyncio.gather(
                self._fetch_thread(content, platform, log),
                self._enrich_links(capture, content, message, log),
            )
            if thread_data is not None and thread_data.tweet_count > 1:
                platform.thread = thread_data
            if linked_content:
                platform.linked_content = linked_content

        notes = message.notes or (capture.platform_data or {}).get("user_notes")
        if notes:
            platform.user_notes = notes
        if message.is_thread_parent:
            platform.thread_depth = message.thread_depth

        # 4. 媒体
        images, videos = await self._process_media(capture, content, log)
        if content.screenshot:
            platform.screenshot = await self._persist_screenshot(capture, content.screenshot, log)

        enriched = content.model_copy(update={"platform_data": platform.to_storage()})

        # 5. 分析
        analysis = await self._analyze(enriched, message)
        log.info(f"分析完成: topics={analysis.topics}, content_type={analysis.content_type}")

        # 6. 向量（可选）
        embedding = await self._embed(enriched, analysis, platform, log)

        # 7. 保存
        fields: Dict[str, Any] = {
            "title": content.title,
            "description": content.description,
            "body_text": (content.body_text or "").replace("\x00", ""),
            "author_name": content.author_name,
            "author_handle": content.author_handle,
            "published_at": to_utc_naive(content.published_at),
            "images": images,
            "videos": videos,
            "summary": analysis.summary,
            "topics": analysis.topics,
            "disciplines": analysis.disciplines,
            "use_cases": analysis.use_cases,
            "content_type": analysis.content_type,
            "platform_data": platform.to_storage(),
            "status": STATUS_COMPLETE,
            "error_message": None,
            "processed_at": now_utc(),
        }
        if embedding is not None:
            fields["embedding"] = embedding
            fields["embedding_generated_at"] = now_utc()

        if link.resolved:
            fields.update(
                parent_id=link.parent_id,
                thread_root_id=link.thread_root_id,
                thread_position=link.thread_position,
            )
        elif message.is_thread_parent and capture.thread_position == 0:
            # 被子推文创建的父记录，且自身不是线程延续：它就是线程的第一条
            fields.update(thread_root_id=capture.id, thread_position=1)
        return fields

    async def _scrape(self, message: CaptureMessage) -> ExtractedContent:
        scraper = self.scrapers.get(message.source_type)
        timeout = settings.scrape_timeout_seconds
        try:
            return await asyncio.wait_for(scraper.scrape(message.url), timeout=timeout)
        except asyncio.TimeoutError as e:
            record_step_failure("scrape")
            raise ScrapeError(f"抓取超时（{timeout}s）: {message.url}") from e
        except Exception:
            record_step_failure("scrape")
            raise

    async def _fetch_thread(self, content: ExtractedContent, platform: PlatformData, log) -> Optional[ThreadData]:
        if self.thread_resolver is None or not platform.tweet_id or not content.author_handle:
            return None
        try:
            return await asyncio.wait_for(
                self.thread_resolver.fetch(platform.tweet_id, content.author_handle),
                timeout=settings.thread_fetch_timeout_seconds,
            )
        except Exception as e:
            log.warning(f"线程全文获取失败: {type(e).__name__}: {e}")
            record_step_failure("thread")
            return None

    async def _enrich_links(
        self,
        capture: CaptureRecord,
        content: ExtractedContent,
        message: CaptureMessage,
        log,
    ) -> List[LinkedContent]:
        if self.link_enricher is None:
            return []
        try:
            return await self.link_enricher.enrich_links(capture, content.body_text, trace_id=message.trace_id)
        except Exception as e:
            log.warning(f"外链补全失败: {type(e).__name__}: {e}")
            record_step_failure("links")
            return []

    async def _process_media(
        self,
        capture: CaptureRecord,
        content: ExtractedContent,
        log,
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        original_images = [url for url in content.images if url]
        original_videos = [
            {"url": v.url, "originalUrl": v.url, **({"thumbnail": v.thumbnail} if v.thumbnail else {})}
            for v in content.videos if v.url
        ]
        if self.media_processor is None:
            return original_images, original_videos
        try:
            return await self.media_processor.process_media(capture.id, content)
        except Exception as e:
            log.warning(f"媒体处理失败，保留原始URL: {type(e).__name__}: {e}")
            record_step_failure("media")
            return original_images, original_videos

    async def _persist_screenshot(self, capture: CaptureRecord, screenshot: str, log) -> Optional[str]:
        if self.media_processor is None:
            return screenshot if screenshot.startswith(("http://", "https://")) else None
        try:
            return await self.media_processor.persist_screenshot(capture.id, screenshot)
        except Exception as e:
            log.warning(f"截图处理失败: {type(e).__name__}: {e}")
            record_step_failure("media")
            return None

    async def _analyze(self, content: ExtractedContent, message: CaptureMessage) -> AnalysisResult:
        timeout = settings.analyze_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.analyzer.analyze(content, message.source_type, message.url),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            record_step_failure("analyze")
            raise AnalysisError(f"分析超时（{timeout}s）") from e
        except Exception:
            record_step_failure("analyze")
            raise

    async def _embed(
        self,
        content: ExtractedContent,
        analysis: AnalysisResult,
        platform: PlatformData,
        log,
    ) -> Optional[List[float]]:
        if self.embedder is None:
            return None
        text = build_embedding_text(
            title=content.title,
            author=content.author_name or content.author_handle,
            body_text=content.body_text,
            summary=analysis.summary,
            topics=analysis.topics,
            description=content.description,
            linked_content=platform.linked_content,
            thread_text=platform.thread.full_text if platform.thread else None,
        )
        if not text:
            return None
        try:
            return await asyncio.wait_for(self.embedder.embed(text), timeout=settings.embed_timeout_seconds)
        except Exception as e:
            log.warning(f"向量生成失败，跳过: {type(e).__name__}: {e}")
            record_step_failure("embed")
            return None
