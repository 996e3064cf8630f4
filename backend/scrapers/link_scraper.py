# 外链内容抓取（文章 / PDF / arXiv 论文）
import logging
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from app.exceptions import ScrapeError
from app.schemas.capture import LinkedContent
from .base import BaseScraper
from .generic import GenericScraper, meta_content
from .link_extractor import is_arxiv_url
from .pdf import extract_pdf

logger = logging.getLogger(__name__)

ARTICLE_BODY_LIMIT = 10000
PDF_BODY_LIMIT = 15000
ARXIV_BODY_LIMIT = 25000


def normalize_arxiv_url(url: str) -> str:
    """arXiv PDF 链接统一为摘要页"""
    if '/pdf/' in url:
        url = url.replace('/pdf/', '/abs/')
        if url.endswith('.pdf'):
            url = url[:-4]
    return url


class LinkScraper(BaseScraper):
    """
    外链抓取

    HTTP 失败和解析失败记录在返回结果的 error 字段中，不向上抛出
    """

    name = 'link'

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._html = GenericScraper(timeout=self.timeout, transport=self.transport)
        self._html.body_limit = ARTICLE_BODY_LIMIT

    def can_handle(self, url: str) -> bool:
        return url.startswith(('http://', 'https://'))

    async def scrape(self, url: str) -> LinkedContent:
        if is_arxiv_url(url):
            return await self.scrape_arxiv(url)
        return await self.scrape_article(url)

    async def scrape_article(self, url: str) -> LinkedContent:
        result = LinkedContent(url=url, content_type='article')
        try:
            response = await self._make_request(url)
        except httpx.HTTPStatusError as e:
            result.error = f'HTTP {e.response.status_code}'
            return result
        except httpx.HTTPError as e:
            result.error = f'{type(e).__name__}: {e}'
            return result

        if 'application/pdf' in response.headers.get('content-type', ''):
            result.content_type = 'pdf'
            try:
                pdf = extract_pdf(response.content)
            except ScrapeError as e:
                result.error = str(e)
                return result
            result.title = pdf['title']
            result.body_text = pdf['text'][:PDF_BODY_LIMIT]
            return result

        soup = BeautifulSoup(response.text, 'html.parser')
        result.title = meta_content(soup, prop='og:title') or (soup.title.get_text(strip=True) if soup.title else None)
        result.description = meta_content(soup, prop='og:description') or meta_content(soup, name='description')
        result.body_text = self._html.extract_body(soup) or None
        return result

    async def scrape_arxiv(self, url: str) -> LinkedContent:
        abs_url = normalize_arxiv_url(url)
        result = LinkedContent(url=abs_url, content_type='arxiv')

        try:
            response = await self._make_request(abs_url)
            soup = BeautifulSoup(response.text, 'html.parser')
            title_tag = soup.select_one('h1.title')
            abstract_tag = soup.select_one('blockquote.abstract')
            result.title = meta_content(soup, name='citation_title') or (
                title_tag.get_text(strip=True).replace('Title:', '').strip() if title_tag else None
            )
            result.description = meta_content(soup, name='citation_abstract') or (
                abstract_tag.get_text(strip=True).replace('Abstract:', '').strip() if abstract_tag else None
            )
        except httpx.HTTPError as e:
            logger.info(f'arXiv 摘要页获取失败: {abs_url} ({e})')

        pdf_text: Optional[str] = None
        pdf_url = abs_url.replace('/abs/', '/pdf/') + '.pdf'
        try:
            pdf_response = await self._make_request(pdf_url, headers={'Accept': 'application/pdf'})
            pdf_text = extract_pdf(pdf_response.content)['text'][:ARXIV_BODY_LIMIT]
        except httpx.HTTPStatusError as e:
            result.error = f'PDF HTTP {e.response.status_code}'
        except (httpx.HTTPError, ScrapeError) as e:
            result.error = str(e)

        if pdf_text:
            result.body_text = (
                f'ABSTRACT:\n{result.description}\n\nFULL PAPER:\n{pdf_text}' if result.description else pdf_text
            )
        elif result.description:
            result.body_text = f'Abstract: {result.description}'
        return result
