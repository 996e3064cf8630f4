"""
线程父推文关联

同作者回复链中的推文被采集时，查找或创建父推文的采集记录并计算线程位置。
父推文记录以 isThreadParent 标记入队，threadDepth 逐层加一，超过上限不再向上解析
"""
from typing import Optional
import logging

from pydantic import BaseModel

from app.config import settings
from app.exceptions import DuplicateRecordError, QueuePublishError
from app.schemas.capture import CaptureMessage, CaptureRecord, ExtractedContent
from app.services.ingestion.url_rules import normalize_url
from app.services.monitoring_service import record_step_failure, record_thread_parent
from app.services.queue import BaseQueue
from app.services.store.base import CaptureStore
from scrapers.twitter import canonical_tweet_url

logger = logging.getLogger(__name__)


class ThreadLinkResult(BaseModel):
    """线程关联结果（thread_position 为 0 表示未关联）"""
    parent_id: Optional[str] = None
    thread_root_id: Optional[str] = None
    thread_position: int = 0

    @property
    def resolved(self) -> bool:
        return self.thread_position > 0


class ThreadLinker:
    """父推文解析与去重"""

    def __init__(
        self,
        capture_store: CaptureStore,
        queue: Optional[BaseQueue] = None,
        max_depth: Optional[int] = None,
    ):
        self.capture_store = capture_store
        self.queue = queue
        self.max_depth = settings.max_thread_depth if max_depth is None else max_depth

    @staticmethod
    def link_to(parent: CaptureRecord) -> ThreadLinkResult:
        """关联到已有父记录：根为父记录的根（或父记录自身），位置为父位置 + 1"""
        return ThreadLinkResult(
            parent_id=parent.id,
            thread_root_id=parent.thread_root_id or parent.id,
            thread_position=max(parent.thread_position, 1) + 1,
        )

    async def resolve_parent(
        self,
        capture: CaptureRecord,
        content: ExtractedContent,
        message: CaptureMessage,
    ) -> ThreadLinkResult:
        """
        解析父推文

        Args:
            capture: 当前（子）采集记录
            content: 抓取结果，thread_context 给出父推文ID与作者
            message: 当前消息（携带 threadDepth）

        Returns:
            关联结果；不是线程延续、超过深度上限或解析失败时 thread_position=0
        """
        context = content.thread_context
        if not context or not context.is_thread_continuation or not context.parent_tweet_id:
            return ThreadLinkResult()

        if message.thread_depth >= self.max_depth:
            logger.info(
                f"线程深度达到上限，不再解析父推文: capture_id={capture.id}, "
                f"depth={message.thread_depth}, max={self.max_depth}"
            )
            record_thread_parent("skipped")
            return ThreadLinkResult()

        try:
            return await self._resolve(capture, content, message)
        except Exception as e:
            # 父推文解析失败时子记录照常处理，只是不关联线程
            logger.warning(
                f"父推文解析失败，跳过线程关联: capture_id={capture.id}, "
                f"parent={context.parent_tweet_id} ({type(e).__name__}: {e})"
            )
            record_step_failure("thread")
            record_thread_parent("unresolved")
            return ThreadLinkResult()

    async def _resolve(
        self,
        capture: CaptureRecord,
        content: ExtractedContent,
        message: CaptureMessage,
    ) -> ThreadLinkResult:
        context = content.thread_context
        parent_tweet_id = context.parent_tweet_id
        handle = context.parent_author_handle or content.author_handle or "i"
        user_id = capture.user_id

        # 1. 已处理过的父推文（platform_data.tweetId）
        parent = await self.capture_store.find_by_platform_reference(user_id, "tweetId", parent_tweet_id)

        # 2. 已创建但尚未处理的父推文（按归一化URL）
        parent_url = canonical_tweet_url(handle, parent_tweet_id)
        normalized = normalize_url(parent_url)
        if parent is None:
            parent = await self.capture_store.get_by_normalized_url(user_id, normalized)

        if parent is not None:
            if parent.id == capture.id:
                return ThreadLinkResult()
            record_thread_parent("linked")
            logger.info(f"关联到已有父推文: capture_id={capture.id} -> parent={parent.id}")
            return self.link_to(parent)

        # 3. 创建父推文记录；并发创建时读取胜出者
        depth = message.thread_depth + 1
        try:
            parent = await self.capture_store.create(
                user_id=user_id,
                source_url=parent_url,
                normalized_url=normalized,
                source_type="twitter",
                platform_data={"tweetId": parent_tweet_id, "threadDepth": depth},
            )
        except DuplicateRecordError:
            winner = await self.capture_store.get_by_normalized_url(user_id, normalized)
            if winner is None:
                raise
            record_thread_parent("raced")
            logger.info(f"父推文已被并发创建，关联到胜出记录: capture_id={capture.id} -> parent={winner.id}")
            return self.link_to(winner)

        await self._enqueue_parent(parent, normalized, message, depth)
        record_thread_parent("created")
        logger.info(f"已创建父推文记录: capture_id={capture.id} -> parent={parent.id}, depth={depth}")
        # 新建的父记录暂视为线程第 1 条；父记录之后关联到更上层时不回写本记录，
        # 因此 thread_position 只是相对位置，同一线程内可能重复
        return ThreadLinkResult(parent_id=parent.id, thread_root_id=parent.id, thread_position=2)

    async def _enqueue_parent(
        self,
        parent: CaptureRecord,
        normalized_url: str,
        message: CaptureMessage,
        depth: int,
    ) -> None:
        if self.queue is None:
            return
        try:
            await self.queue.publish_capture(CaptureMessage(
                capture_id=parent.id,
                url=normalized_url,
                source_type="twitter",
                user_id=parent.user_id,
                trace_id=message.trace_id,
                is_thread_parent=True,
                thread_depth=depth,
            ))
        except QueuePublishError as e:
            # 父记录已存在（pending），由对账任务补发
            logger.error(f"父推文入队失败: parent={parent.id}, error={e}")
