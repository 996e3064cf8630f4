"""
媒体持久化存储

- S3MediaStore：S3 或兼容对象存储（MinIO、R2 等），基于 boto3
- LocalMediaStore：本地目录，开发环境使用
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
import asyncio
import logging

import boto3

from app.config import settings
from app.exceptions import ConfigurationError, MediaError

logger = logging.getLogger(__name__)


class BaseMediaStore(ABC):
    """媒体存储能力"""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """
        保存对象

        Returns:
            可访问的持久URL

        Raises:
            MediaError: 写入失败
        """


class S3MediaStore(BaseMediaStore):
    """S3 对象存储"""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
    ):
        if not bucket:
            raise ConfigurationError("缺少必需配置: MEDIA_BUCKET", missing=["MEDIA_BUCKET"])
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url or None
        self.public_base_url = (public_base_url or "").rstrip("/")
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            endpoint_url=self.endpoint_url,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            # boto3 是同步客户端
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except Exception as e:
            raise MediaError(f"上传到 s3://{self.bucket}/{key} 失败: {e}") from e
        return self.public_url(key)


class LocalMediaStore(BaseMediaStore):
    """本地目录存储"""

    def __init__(self, root: str, public_base_url: Optional[str] = None):
        self.root = Path(root)
        self.public_base_url = (public_base_url or "").rstrip("/")

    def _write(self, key: str, data: bytes) -> Path:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            path = await asyncio.to_thread(self._write, key, data)
        except OSError as e:
            raise MediaError(f"写入本地文件 {key} 失败: {e}") from e
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return path.resolve().as_uri()


def get_media_store() -> BaseMediaStore:
    """
    根据配置创建媒体存储

    Raises:
        ConfigurationError: 后端不支持或必需配置缺失
    """
    backend = settings.media_backend
    if backend == "s3":
        settings.require("media_bucket")
        return S3MediaStore(
            bucket=settings.media_bucket,
            region=settings.media_region,
            access_key=settings.media_access_key,
            secret_key=settings.media_secret_key,
            endpoint_url=settings.media_endpoint_url,
            public_base_url=settings.media_public_base_url,
        )
    if backend == "local":
        return LocalMediaStore(settings.media_local_root, settings.media_public_base_url)
    raise ConfigurationError(f"不支持的媒体存储后端: {backend}")
