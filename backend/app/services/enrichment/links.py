"""
外链补全

从正文中提取外链，去重后最多抓取 max_linked_urls 个（并发），
单个外链失败只记录在该条目的 error 字段，不终止处理
"""
from typing import List, Optional, Tuple
import asyncio
import logging

from app.config import settings
from app.exceptions import DuplicateRecordError, InvalidCaptureError, QueuePublishError
from app.schemas.capture import CaptureMessage, CaptureRecord, LinkedContent
from app.services.ingestion.url_rules import detect_source_type, normalize_url, validate_url
from app.services.monitoring_service import record_linked_url, record_step_failure
from app.services.queue import BaseQueue
from app.services.store.base import CaptureStore, ContentLinkStore
from scrapers.link_extractor import dedupe_links, extract_links_from_text

logger = logging.getLogger(__name__)


class LinkEnricher:
    """外链抓取与链接图记录"""

    def __init__(
        self,
        link_scraper,
        capture_store: CaptureStore,
        link_store: Optional[ContentLinkStore] = None,
        queue: Optional[BaseQueue] = None,
        max_links: Optional[int] = None,
        timeout: Optional[float] = None,
        auto_capture: Optional[bool] = None,
    ):
        """
        Args:
            link_scraper: 外链抓取器（scrape(url) -> LinkedContent）
            capture_store: 采集记录存储，用于查找已采集的外链
            link_store: 链接图存储，为空时不记录
            queue: 开启自动采集时用于入队新记录
            max_links: 每条采集最多抓取的外链数
            timeout: 单个外链抓取超时秒数
            auto_capture: 是否为未采集过的外链创建独立采集记录
        """
        self.link_scraper = link_scraper
        self.capture_store = capture_store
        self.link_store = link_store
        self.queue = queue
        self.max_links = settings.max_linked_urls if max_links is None else max_links
        self.timeout = timeout or settings.link_scrape_timeout_seconds
        self.auto_capture = settings.auto_capture_linked_content if auto_capture is None else auto_capture

    def select_urls(self, body_text: Optional[str]) -> List[str]:
        """提取、去重并截断外链列表（保持出现顺序）"""
        links = dedupe_links(extract_links_from_text(body_text or ""))
        if len(links) > self.max_links:
            logger.info(f"外链数 {len(links)} 超过上限，只抓取前 {self.max_links} 个")
        return links[:self.max_links]

    async def _scrape_one(self, url: str) -> LinkedContent:
        try:
            result = await asyncio.wait_for(self.link_scraper.scrape(url), timeout=self.timeout)
        except asyncio.TimeoutError:
            result = LinkedContent(url=url, error=f"timeout after {self.timeout}s")
        except Exception as e:
            # 单个外链失败不影响整体
            logger.warning(f"外链抓取异常: {url} ({type(e).__name__}: {e})")
            result = LinkedContent(url=url, error=str(e) or type(e).__name__)

        record_linked_url(result.error is None)
        if result.error:
            record_step_failure("links")
        return result

    async def enrich_links(
        self,
        capture: CaptureRecord,
        body_text: Optional[str],
        trace_id: Optional[str] = None,
    ) -> List[LinkedContent]:
        """
        并发抓取正文中的外链

        Args:
            capture: 当前采集记录
            body_text: 抓取得到的正文
            trace_id: 处理链路ID（自动采集外链时透传）

        Returns:
            每个外链一条结果，顺序与选取顺序一致
        """
        urls = self.select_urls(body_text)
        if not urls:
            return []

        results = list(await asyncio.gather(*(self._scrape_one(url) for url in urls)))
        failed = sum(1 for r in results if r.error)
        logger.info(f"外链抓取完成: capture_id={capture.id}, total={len(results)}, failed={failed}")

        if self.link_store is not None:
            for item in results:
                await self._record_link(capture, item, trace_id)
        return results

    async def _record_link(self, capture: CaptureRecord, item: LinkedContent, trace_id: Optional[str]) -> None:
        try:
            target, status = await self._resolve_target(capture, item, trace_id)
            await self.link_store.record_link(
                source_content_id=capture.id,
                url=item.url,
                target_content_id=target.id if target else None,
                link_type="embedded",
                status=status,
                error_message=item.error,
            )
        except Exception as e:
            # 链接图写入失败不影响采集
            logger.warning(f"记录外链失败: capture_id={capture.id}, url={item.url} ({type(e).__name__}: {e})")

    async def _resolve_target(
        self,
        capture: CaptureRecord,
        item: LinkedContent,
        trace_id: Optional[str],
    ) -> Tuple[Optional[CaptureRecord], str]:
        """
        查找外链对应的采集记录

        Returns:
            (目标记录, 链接状态)。已采集过的外链复用已有记录（skipped）；
            开启自动采集时创建新的 pending 记录并入队（pending）
        """
        try:
            normalized = normalize_url(validate_url(item.url))
        except InvalidCaptureError:
            return None, "skipped"

        existing = await self.capture_store.get_by_normalized_url(capture.user_id, normalized)
        if existing is not None:
            return existing, "skipped"
        if not self.auto_capture or item.error:
            return None, "pending"

        source_type = detect_source_type(normalized)
        try:
            created = await self.capture_store.create(
                user_id=capture.user_id,
                source_url=item.url,
                normalized_url=normalized,
                source_type=source_type,
            )
        except DuplicateRecordError:
            winner = await self.capture_store.get_by_normalized_url(capture.user_id, normalized)
            return winner, "skipped"

        if self.queue is not None:
            try:
                await self.queue.publish_capture(CaptureMessage(
                    capture_id=created.id,
                    url=normalized,
                    source_type=source_type,
                    user_id=capture.user_id,
                    trace_id=trace_id,
                ))
            except QueuePublishError as e:
                logger.error(f"外链采集入队失败，记录保持 pending: capture_id={created.id}, error={e}")
        return created, "pending"
