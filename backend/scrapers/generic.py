# 通用网页爬虫（Open Graph + 正文提取，PDF 响应走 PDF 解析）
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from app.exceptions import ScrapeError
from app.schemas.capture import ExtractedContent, VideoItem
from app.utils.timezone import parse_datetime
from .base import BaseScraper
from .pdf import extract_pdf

logger = logging.getLogger(__name__)

# 正文前移除的非内容元素
NOISE_SELECTORS = 'script, style, nav, footer, header, aside, noscript, .sidebar, .comments, .ads'


def meta_content(soup: BeautifulSoup, *, prop: Optional[str] = None, name: Optional[str] = None) -> Optional[str]:
    attrs = {'property': prop} if prop else {'name': name}
    tag = soup.find('meta', attrs=attrs)
    if tag and tag.get('content'):
        return tag['content'].strip() or None
    return None


def _is_valid_image(url: str) -> bool:
    lower = url.lower()
    if lower.startswith('data:'):
        return False
    if any(marker in lower for marker in ('tracking', 'pixel', '1x1')):
        return False
    return not lower.split('?')[0].endswith(('.svg', '.gif'))


class GenericScraper(BaseScraper):
    """通用网页爬虫（兜底）"""

    name = 'generic'
    max_images = 10
    body_limit = 20000

    def can_handle(self, url: str) -> bool:
        return True

    async def scrape(self, url: str) -> ExtractedContent:
        try:
            response = await self._make_request(url)
        except httpx.HTTPError as e:
            raise ScrapeError(f'页面请求失败: {e}') from e

        content_type = response.headers.get('content-type', '')
        if 'application/pdf' in content_type:
            return self.parse_pdf(url, response.content)
        return self.parse_html(url, response.text)

    def parse_pdf(self, url: str, data: bytes) -> ExtractedContent:
        pdf = extract_pdf(data)
        text = pdf['text']
        return ExtractedContent(
            title=pdf['title'] or url.rstrip('/').rsplit('/', 1)[-1],
            description=text[:500] + ('...' if len(text) > 500 else '') if text else None,
            body_text=text,
            author_name=pdf['author'],
            platform_data={'contentFormat': 'pdf', 'pageCount': pdf['page_count'], 'isArticle': True},
        )

    def extract_images(self, soup: BeautifulSoup, url: str, og_image: Optional[str], twitter_image: Optional[str]) -> List[str]:
        images: List[str] = []
        seen = set()
        for candidate in (og_image, twitter_image):
            if candidate and candidate not in seen:
                images.append(urljoin(url, candidate))
                seen.add(candidate)
        for img in soup.find_all('img'):
            if len(images) >= self.max_images:
                break
            src = img.get('src') or img.get('data-src')
            if src and src not in seen and _is_valid_image(src):
                images.append(urljoin(url, src))
                seen.add(src)
        return images

    def extract_body(self, soup: BeautifulSoup) -> str:
        for element in soup.select(NOISE_SELECTORS):
            element.decompose()
        main = (
            soup.find('article')
            or soup.find('main')
            or soup.find(attrs={'role': 'main'})
            or soup.body
            or soup
        )
        return ' '.join(main.get_text(separator=' ').split())[:self.body_limit]

    def parse_html(self, url: str, html: str) -> ExtractedContent:
        soup = BeautifulSoup(html, 'html.parser')

        og_title = meta_content(soup, prop='og:title')
        og_description = meta_content(soup, prop='og:description')
        og_image = meta_content(soup, prop='og:image')
        og_video = meta_content(soup, prop='og:video') or meta_content(soup, prop='og:video:url')
        twitter_image = meta_content(soup, name='twitter:image')
        twitter_creator = meta_content(soup, name='twitter:creator')

        title = og_title or meta_content(soup, name='twitter:title') or (soup.title.get_text(strip=True) if soup.title else None)
        description = og_description or meta_content(soup, name='twitter:description') or meta_content(soup, name='description')
        author_name = meta_content(soup, name='author') or meta_content(soup, prop='article:author') or (
            twitter_creator.lstrip('@') if twitter_creator else None
        )

        published_raw = meta_content(soup, prop='article:published_time')
        if not published_raw:
            time_tag = soup.find('time', attrs={'datetime': True})
            published_raw = time_tag['datetime'] if time_tag else None

        canonical = soup.find('link', attrs={'rel': 'canonical'})
        og_type = meta_content(soup, prop='og:type')
        platform_data: Dict[str, Any] = {
            'ogType': og_type,
            'canonicalUrl': canonical.get('href') if canonical else None,
            'siteName': meta_content(soup, prop='og:site_name'),
        }
        if og_type == 'article':
            platform_data['isArticle'] = True

        images = self.extract_images(soup, url, og_image, twitter_image)
        body_text = self.extract_body(soup)
        videos = [VideoItem(url=urljoin(url, og_video), thumbnail=og_image)] if og_video else []

        return ExtractedContent(
            title=title,
            description=description,
            body_text=body_text,
            author_name=author_name,
            author_handle=twitter_creator,
            published_at=parse_datetime(published_raw),
            images=images,
            videos=videos,
            platform_data={k: v for k, v in platform_data.items() if v is not None},
        )
