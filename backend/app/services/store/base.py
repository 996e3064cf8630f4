"""
存储层接口

流水线只依赖这里定义的抽象接口，具体实现见 sql_store.py；
每个方法独立提交，步骤之间不共享事务
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.schemas.capture import CaptureRecord, ContentLinkRecord, NoteRecord


class CaptureStore(ABC):
    """采集记录存储"""

    @abstractmethod
    async def create(
        self,
        user_id: str,
        source_url: str,
        normalized_url: str,
        source_type: str,
        platform_data: Optional[Dict[str, Any]] = None,
    ) -> CaptureRecord:
        """
        创建 pending 记录

        Raises:
            DuplicateRecordError: (user_id, normalized_url) 已存在
        """

    @abstractmethod
    async def get_by_id(self, capture_id: str, user_id: Optional[str] = None) -> Optional[CaptureRecord]:
        """按ID读取，指定 user_id 时只返回该用户的记录"""

    @abstractmethod
    async def get_by_normalized_url(self, user_id: str, normalized_url: str) -> Optional[CaptureRecord]:
        """按归一化URL读取"""

    @abstractmethod
    async def update_status(self, capture_id: str, status: str, error_message: Optional[str] = None) -> None:
        """更新状态（error_message 同时覆盖，传 None 即清空）"""

    @abstractmethod
    async def update_fields(self, capture_id: str, fields: Dict[str, Any]) -> None:
        """部分字段更新"""

    @abstractmethod
    async def find_by_platform_reference(self, user_id: str, key: str, value: str) -> Optional[CaptureRecord]:
        """按 platform_data[key] == value 查找（用于父推文查找）"""

    @abstractmethod
    async def list_stale_pending(self, older_than: datetime, limit: int) -> List[CaptureRecord]:
        """列出创建时间早于 older_than 仍为 pending 的记录"""


class NoteStore(ABC):
    """笔记存储"""

    @abstractmethod
    async def create(self, user_id: str, raw_text: str, content_hash: str) -> NoteRecord:
        """
        创建 pending 笔记

        Raises:
            DuplicateRecordError: (user_id, content_hash) 已存在
        """

    @abstractmethod
    async def get_by_id(self, note_id: str, user_id: Optional[str] = None) -> Optional[NoteRecord]:
        """按ID读取"""

    @abstractmethod
    async def get_by_content_hash(self, user_id: str, content_hash: str) -> Optional[NoteRecord]:
        """按内容哈希读取"""

    @abstractmethod
    async def claim_for_processing(self, note_id: str) -> Optional[NoteRecord]:
        """
        将 pending/failed 笔记置为 processing 并累加处理次数

        Returns:
            认领成功返回最新记录；笔记不存在或状态不可认领返回 None
        """

    @abstractmethod
    async def update_status(self, note_id: str, status: str, error_message: Optional[str] = None) -> None:
        """更新状态"""

    @abstractmethod
    async def update_fields(self, note_id: str, fields: Dict[str, Any]) -> None:
        """部分字段更新"""

    @abstractmethod
    async def list_notes(
        self,
        user_id: str,
        limit: int = 20,
        status: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> Tuple[List[NoteRecord], Optional[str]]:
        """按创建时间倒序分页，返回 (笔记列表, 下一页游标)"""

    @abstractmethod
    async def list_stale_pending(self, older_than: datetime, limit: int) -> List[NoteRecord]:
        """列出创建时间早于 older_than 仍为 pending 的笔记"""


class ContentLinkStore(ABC):
    """内容链接存储"""

    @abstractmethod
    async def record_link(
        self,
        source_content_id: str,
        url: str,
        target_content_id: Optional[str] = None,
        link_type: str = "mentioned",
        status: str = "pending",
        error_message: Optional[str] = None,
    ) -> ContentLinkRecord:
        """写入或更新 (source_content_id, url) 对应的链接"""

    @abstractmethod
    async def list_for_source(self, source_content_id: str) -> List[ContentLinkRecord]:
        """列出某条采集记录的全部外链"""
