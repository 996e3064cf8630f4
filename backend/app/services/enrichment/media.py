"""
媒体处理

逐个下载图片/视频并写入媒体存储；单个媒体失败时保留原始URL，不终止处理
"""
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import base64
import binascii
import logging
import mimetypes
import re

import httpx

from app.config import settings
from app.exceptions import MediaError
from app.schemas.capture import ExtractedContent
from app.services.media_store import BaseMediaStore

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=-]+)*;base64,(?P<data>.+)$", re.DOTALL)


def _extension(content_type: str, default: str) -> str:
    ext = mimetypes.guess_extension(content_type.split(";")[0].strip()) if content_type else None
    if ext == ".jpe":
        ext = ".jpg"
    return ext or default


def _declared_length(value: Optional[str]) -> int:
    """解析 content-length；缺失或非法时返回 0（以实际读取字节数为准）"""
    try:
        return max(int(value or 0), 0)
    except ValueError:
        return 0


class MediaProcessor:
    """下载并持久化采集内容中的媒体"""

    def __init__(
        self,
        media_store: BaseMediaStore,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.media_store = media_store
        self.timeout = timeout or settings.media_timeout_seconds
        self.max_bytes = max_bytes or settings.media_max_bytes
        self.transport = transport

    async def _download(self, url: str) -> Tuple[bytes, str]:
        headers = {"User-Agent": settings.user_agent}
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            async with client.stream("GET", url, headers=headers) as response:
                response.raise_for_status()
                content_type = response.headers.get("content-type", "application/octet-stream")
                declared = _declared_length(response.headers.get("content-length"))
                if declared > self.max_bytes:
                    raise MediaError(f"媒体过大: {declared} bytes")
                chunks = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise MediaError(f"媒体过大: 超过 {self.max_bytes} bytes")
                    chunks.append(chunk)
        return b"".join(chunks), content_type

    async def _persist_remote(self, url: str, key_prefix: str, default_ext: str) -> str:
        data, content_type = await self._download(url)
        key = f"{key_prefix}{_extension(content_type, default_ext)}"
        return await self.media_store.put(key, data, content_type)

    async def _persist_with_fallback(self, url: str, key_prefix: str, default_ext: str) -> str:
        try:
            return await asyncio.wait_for(
                self._persist_remote(url, key_prefix, default_ext),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning(f"媒体持久化失败，保留原始URL: {url} ({type(e).__name__}: {e})")
            return url

    async def process_media(
        self,
        capture_id: str,
        content: ExtractedContent
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        """
        持久化图片与视频

        Returns:
            (图片URL列表, 视频列表)，顺序与输入一致
        """
        images: List[str] = []
        for i, image_url in enumerate(content.images):
            if not image_url:
                continue
            images.append(
                await self._persist_with_fallback(image_url, f"captures/{capture_id}/images/{i}", ".jpg")
            )

        videos: List[Dict[str, Any]] = []
        for i, video in enumerate(content.videos):
            if not video.url:
                continue
            stored_url = await self._persist_with_fallback(video.url, f"captures/{capture_id}/videos/{i}", ".mp4")
            entry = {"url": stored_url, "originalUrl": video.url}
            if video.thumbnail:
                entry["thumbnail"] = video.thumbnail
            if video.content_type:
                entry["contentType"] = video.content_type
            videos.append(entry)

        return images, videos

    async def persist_screenshot(self, capture_id: str, screenshot: Optional[str]) -> Optional[str]:
        """
        将截图（data URI 或远程URL）转为持久URL

        data URI 解码失败或上传失败时返回 None；远程URL失败时保留原始URL
        """
        if not screenshot:
            return None

        match = _DATA_URI_RE.match(screenshot.strip())
        if match:
            content_type = match.group("mime") or "image/png"
            try:
                data = base64.b64decode(match.group("data"), validate=False)
            except (binascii.Error, ValueError) as e:
                logger.warning(f"截图 base64 解码失败: {e}")
                return None
            key = f"captures/{capture_id}/screenshot{_extension(content_type, '.png')}"
            try:
                return await asyncio.wait_for(
                    self.media_store.put(key, data, content_type),
                    timeout=self.timeout,
                )
            except Exception as e:
                logger.warning(f"截图上传失败: {e}")
                return None

        if screenshot.startswith(("http://", "https://")):
            return await self._persist_with_fallback(screenshot, f"captures/{capture_id}/screenshot", ".png")

        logger.warning("无法识别的截图格式，已忽略")
        return None
