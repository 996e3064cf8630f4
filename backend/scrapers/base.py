# 基础爬虫类
from typing import Any, Dict, Optional
from abc import ABC, abstractmethod
import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from app.config import settings
from app.schemas.capture import ExtractedContent


def _is_retryable(exc: BaseException) -> bool:
    """网络错误与 5xx/429 重试，其余 4xx 直接失败"""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return False


class BaseScraper(ABC):
    """所有来源爬虫的基类"""

    name = "base"

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout or settings.fetch_timeout_seconds
        self.transport = transport
        self.headers = {
            'User-Agent': settings.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5',
        }

    @abstractmethod
    def can_handle(self, url: str) -> bool:
        """是否能处理该URL"""
        pass

    @abstractmethod
    async def scrape(self, url: str) -> ExtractedContent:
        """
        抓取URL内容

        Args:
            url: 目标URL

        Returns:
            结构化内容

        Raises:
            ScrapeError: 抓取或解析失败
        """
        pass

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(settings.fetch_max_retries + 1),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _make_request(
        self,
        url: str,
        method: str = 'GET',
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any
    ) -> httpx.Response:
        """
        发起HTTP请求，带重试机制

        Args:
            url: 请求URL
            method: HTTP方法
            headers: 额外请求头
            **kwargs: 其他请求参数

        Returns:
            响应对象
        """
        request_headers = {**self.headers, **(headers or {})}
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            response = await client.request(method.upper(), url, headers=request_headers, **kwargs)
            response.raise_for_status()
            return response
