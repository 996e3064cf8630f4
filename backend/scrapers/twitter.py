# Twitter / X 爬虫（基于 FxTwitter JSON API）
import re
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.config import settings
from app.exceptions import ScrapeError
from app.schemas.capture import ExtractedContent, ThreadContext, VideoItem
from app.utils.timezone import parse_datetime
from .base import BaseScraper

logger = logging.getLogger(__name__)

TWEET_URL_RE = re.compile(
    r'^https?://(?:www\.|mobile\.|m\.)?(?:twitter|x)\.com/(?P<handle>\w+)/status(?:es)?/(?P<id>\d+)',
    re.IGNORECASE,
)


def parse_tweet_url(url: str) -> Optional[Tuple[str, str]]:
    """从推文URL中解析 (handle, tweet_id)"""
    match = TWEET_URL_RE.match(url or '')
    if not match:
        return None
    return match.group('handle'), match.group('id')


def canonical_tweet_url(handle: str, tweet_id: str) -> str:
    """推文的规范URL（与归一化规则一致）"""
    return f"https://x.com/{handle.lstrip('@').lower()}/status/{tweet_id}"


class TwitterScraper(BaseScraper):
    """Twitter / X 推文爬虫"""

    name = 'twitter'

    def __init__(self, api_base: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_base = (api_base or settings.fxtwitter_api_base).rstrip('/')
        self.headers.update({'Accept': 'application/json'})

    def can_handle(self, url: str) -> bool:
        return parse_tweet_url(url) is not None

    async def fetch_tweet(self, handle: str, tweet_id: str) -> Optional[Dict[str, Any]]:
        """
        获取单条推文的原始 JSON

        推文不存在（404 或 code != 200）返回 None
        """
        try:
            response = await self._make_request(f'{self.api_base}/{handle}/status/{tweet_id}')
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        data = response.json()
        if data.get('code') != 200 or not data.get('tweet'):
            return None
        return data['tweet']

    async def scrape(self, url: str) -> ExtractedContent:
        parsed = parse_tweet_url(url)
        if not parsed:
            raise ScrapeError(f'无法识别的推文URL: {url}')
        handle, tweet_id = parsed

        try:
            tweet = await self.fetch_tweet(handle, tweet_id)
        except httpx.HTTPError as e:
            raise ScrapeError(f'FxTwitter 请求失败: {e}') from e
        if tweet is None:
            raise ScrapeError(f'推文不存在或不可访问: {tweet_id}')

        return self.parse_tweet(tweet)

    @staticmethod
    def _media(tweet: Dict[str, Any]) -> Tuple[List[str], List[VideoItem]]:
        media = tweet.get('media') or {}
        images = [p['url'] for p in media.get('photos') or [] if p.get('url')]
        videos = [
            VideoItem(
                url=v['url'],
                thumbnail=v.get('thumbnail_url'),
                content_type=v.get('format') or 'video/mp4',
            )
            for v in media.get('videos') or []
            if v.get('url')
        ]
        return images, videos

    def parse_tweet(self, tweet: Dict[str, Any]) -> ExtractedContent:
        """将 FxTwitter 推文 JSON 转为结构化内容"""
        author = tweet.get('author') or {}
        screen_name = author.get('screen_name') or ''
        text = tweet.get('text') or ''
        images, videos = self._media(tweet)

        title = text[:100] + ('...' if len(text) > 100 else '')
        platform_data: Dict[str, Any] = {
            'tweetId': str(tweet.get('id')) if tweet.get('id') else None,
            'retweetCount': tweet.get('retweets'),
            'likeCount': tweet.get('likes'),
            'replyCount': tweet.get('replies'),
            'profileImageUrl': author.get('avatar_url'),
        }

        # X 长文（Article）
        article = tweet.get('article')
        if article:
            platform_data['isArticle'] = True
            title = article.get('title') or title
            preview = article.get('preview_text') or ''
            blocks = (article.get('content') or {}).get('blocks') or []
            article_text = '\n\n'.join(b.get('text', '') for b in blocks if b.get('text'))
            text = article_text or preview or text
            cover = (article.get('cover_media') or {}).get('media_info', {}).get('original_img_url')
            if cover:
                images.insert(0, cover)

        # 引用推文的文本附在正文后
        quote = tweet.get('quote')
        if quote and quote.get('text'):
            quote_author = (quote.get('author') or {}).get('screen_name', '')
            text = f"{text}\n\nQuoting @{quote_author}: {quote['text']}"
            platform_data['quotedTweetId'] = str(quote.get('id'))

        thread_context = None
        parent_id = tweet.get('replying_to_status')
        parent_handle = tweet.get('replying_to')
        if parent_id:
            platform_data['parentTweetId'] = str(parent_id)
            # 只有回复同一作者才视为线程延续
            is_continuation = bool(
                parent_handle and screen_name and parent_handle.lower() == screen_name.lower()
            )
            thread_context = ThreadContext(
                is_thread_continuation=is_continuation,
                parent_tweet_id=str(parent_id),
                parent_author_handle=parent_handle,
                conversation_id=tweet.get('conversation_id'),
            )

        return ExtractedContent(
            title=title,
            description=text[:500] if text else None,
            body_text=text,
            author_name=author.get('name'),
            author_handle=f'@{screen_name}' if screen_name else None,
            published_at=parse_datetime(tweet.get('created_at')),
            images=images,
            videos=videos,
            platform_data={k: v for k, v in platform_data.items() if v is not None},
            thread_context=thread_context,
        )
