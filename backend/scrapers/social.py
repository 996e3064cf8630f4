# 社交平台爬虫（Instagram / LinkedIn / Pinterest），基于页面 Open Graph 元数据
import re
from typing import Optional
from urllib.parse import urlparse

from app.schemas.capture import ExtractedContent
from .generic import GenericScraper

# "1,234 likes, 56 comments - handle on June 1, 2024: "caption""
INSTAGRAM_DESCRIPTION_RE = re.compile(r'-\s*(?P<handle>[\w.]+)\s+on\s+[^:]+:\s*"?(?P<caption>.*?)"?\s*$', re.DOTALL)

LINKEDIN_POST_RE = re.compile(r'/posts/(?P<handle>[\w-]+?)_')


def _host(url: str) -> str:
    host = (urlparse(url).hostname or '').lower()
    for prefix in ('www.', 'm.', 'mobile.'):
        if host.startswith(prefix):
            host = host[len(prefix):]
    return host


class InstagramScraper(GenericScraper):
    """Instagram 帖子"""

    name = 'instagram'

    def can_handle(self, url: str) -> bool:
        return _host(url) == 'instagram.com'

    def parse_html(self, url: str, html: str) -> ExtractedContent:
        content = super().parse_html(url, html)
        match = INSTAGRAM_DESCRIPTION_RE.search(content.description or '')
        if match:
            content.author_handle = f"@{match.group('handle')}"
            caption = match.group('caption').strip()
            if caption:
                content.body_text = caption
        # 页面正文是登录墙文案，没有说明时用描述代替
        elif content.description:
            content.body_text = content.description
        content.platform_data['shortcode'] = self._shortcode(url)
        return content

    @staticmethod
    def _shortcode(url: str) -> Optional[str]:
        match = re.search(r'/(?:p|reel|tv)/([\w-]+)', url)
        return match.group(1) if match else None


class LinkedInScraper(GenericScraper):
    """LinkedIn 帖子 / 文章"""

    name = 'linkedin'

    def can_handle(self, url: str) -> bool:
        return _host(url) == 'linkedin.com'

    def parse_html(self, url: str, html: str) -> ExtractedContent:
        content = super().parse_html(url, html)
        match = LINKEDIN_POST_RE.search(urlparse(url).path)
        if match and not content.author_handle:
            content.author_handle = match.group('handle')
        if '/pulse/' in url:
            content.platform_data['isArticle'] = True
        return content


class PinterestScraper(GenericScraper):
    """Pinterest Pin"""

    name = 'pinterest'
    max_images = 4

    def can_handle(self, url: str) -> bool:
        host = _host(url)
        return host == 'pin.it' or host.startswith('pinterest.') or '.pinterest.' in host

    def parse_html(self, url: str, html: str) -> ExtractedContent:
        content = super().parse_html(url, html)
        # Pin 的正文就是描述
        if content.description:
            content.body_text = content.description
        match = re.search(r'/pin/(\d+)', url)
        if match:
            content.platform_data['pinId'] = match.group(1)
        return content
