# 推文线程全文获取（ThreadReaderApp 优先，FxTwitter 回溯兜底）
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from app.config import settings
from app.schemas.capture import ThreadData
from .link_extractor import dedupe_links, extract_links_from_text
from .twitter import TwitterScraper

logger = logging.getLogger(__name__)

THREAD_SEPARATOR = '\n\n---\n\n'


class ThreadFetcher:
    """线程解析器"""

    def __init__(
        self,
        twitter: Optional[TwitterScraper] = None,
        threadreader_base: Optional[str] = None,
        max_walk_depth: Optional[int] = None,
        walk_delay: float = 0.3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.twitter = twitter or TwitterScraper(transport=transport)
        self.threadreader_base = (threadreader_base or settings.threadreader_base).rstrip('/')
        self.max_walk_depth = max_walk_depth or settings.max_thread_depth
        self.walk_delay = walk_delay
        self.transport = transport

    async def fetch_from_threadreader(self, tweet_id: str) -> Optional[ThreadData]:
        """从 ThreadReaderApp 读取已展开的线程，未展开或请求失败返回 None"""
        url = f'{self.threadreader_base}/thread/{tweet_id}.html'
        try:
            async with httpx.AsyncClient(
                timeout=settings.fetch_timeout_seconds,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url, headers={'User-Agent': settings.user_agent})
        except httpx.HTTPError as e:
            logger.info(f'ThreadReaderApp 请求失败: {e}')
            return None
        if response.status_code != 200:
            return None

        soup = BeautifulSoup(response.text, 'html.parser')
        tweets = soup.select('.content-tweet')
        if not tweets:
            return None

        texts: List[str] = []
        links: List[str] = []
        for el in tweets:
            text = ' '.join(el.get_text(separator=' ').split())
            if len(text) > 5:
                texts.append(text)
                links.extend(extract_links_from_text(text))
            for anchor in el.find_all('a', href=True):
                if anchor['href'].startswith('http'):
                    links.extend(extract_links_from_text(anchor['href']))

        return ThreadData(
            tweet_count=len(texts),
            texts=texts,
            links=dedupe_links(links),
            full_text=THREAD_SEPARATOR.join(texts),
            source='threadreaderapp',
        )

    async def walk_thread_up(self, handle: str, tweet_id: str) -> List[Dict[str, Any]]:
        """沿同作者回复链向上回溯，返回按时间顺序排列的推文"""
        author = handle.lstrip('@').lower()
        thread: List[Dict[str, Any]] = []
        current_handle, current_id = handle.lstrip('@'), tweet_id

        for depth in range(self.max_walk_depth + 1):
            try:
                tweet = await self.twitter.fetch_tweet(current_handle, current_id)
            except httpx.HTTPError as e:
                logger.info(f'FxTwitter 回溯中断: {e}')
                break
            if not tweet:
                break
            if (tweet.get('author') or {}).get('screen_name', '').lower() == author:
                thread.insert(0, tweet)

            parent_id = tweet.get('replying_to_status')
            parent_handle = tweet.get('replying_to') or ''
            if not parent_id or parent_handle.lower() != author:
                break
            current_handle, current_id = parent_handle, str(parent_id)
            if self.walk_delay:
                await asyncio.sleep(self.walk_delay)

        return thread

    async def fetch(self, tweet_id: str, author_handle: str) -> Optional[ThreadData]:
        """
        获取线程全文

        Returns:
            线程数据；不是线程（只有一条）且没有可用数据时返回 None
        """
        reader_data = await self.fetch_from_threadreader(tweet_id)
        if reader_data and reader_data.tweet_count > 1:
            return reader_data

        chain = await self.walk_thread_up(author_handle, tweet_id)
        if len(chain) > 1:
            texts = [t.get('text') or '' for t in chain]
            links = dedupe_links(*(extract_links_from_text(text) for text in texts))
            return ThreadData(
                tweet_count=len(chain),
                texts=texts,
                links=links,
                full_text=THREAD_SEPARATOR.join(texts),
                source='fxtwitter',
            )

        return reader_data
