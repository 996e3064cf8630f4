"""
基于 SQLAlchemy 的存储实现

每个方法使用独立会话并立即提交；唯一约束冲突转换为 DuplicateRecordError
"""
import base64
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import select, update, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.database import get_async_session
from app.exceptions import DuplicateRecordError
from app.models import CaptureItem, ContentLink, Note
from app.schemas.capture import (
    CaptureRecord,
    ContentLinkRecord,
    NoteRecord,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
)
from app.utils.timezone import now_utc

from .base import CaptureStore, ContentLinkStore, NoteStore

logger = logging.getLogger(__name__)


def encode_cursor(created_at: datetime, record_id: str) -> str:
    """分页游标：创建时间 + ID"""
    raw = f"{created_at.isoformat()}|{record_id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> Tuple[datetime, str]:
    """
    解析分页游标

    Raises:
        ValueError: 游标格式非法
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        created_at, record_id = raw.split("|", 1)
        return datetime.fromisoformat(created_at), record_id
    except (UnicodeError, ValueError) as e:
        raise ValueError(f"非法的分页游标: {cursor}") from e


class _SqlStoreBase:
    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker:
        # Celery 任务会重置引擎，这里每次按需获取当前的会话工厂
        return self._session_factory or get_async_session()


class SqlCaptureStore(_SqlStoreBase, CaptureStore):
    """采集记录存储（content_items 表）"""

    async def create(
        self,
        user_id: str,
        source_url: str,
        normalized_url: str,
        source_type: str,
        platform_data: Optional[Dict[str, Any]] = None,
    ) -> CaptureRecord:
        item = CaptureItem(
            user_id=user_id,
            source_url=source_url,
            normalized_url=normalized_url,
            source_type=source_type,
            status=STATUS_PENDING,
            platform_data=platform_data or {},
            images=[],
            videos=[],
            thread_position=0,
            delivery_attempts=0,
        )
        async with self.session_factory() as session:
            session.add(item)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateRecordError(
                    f"采集记录已存在: user={user_id}, url={normalized_url}"
                ) from e
            await session.refresh(item)
            return CaptureRecord.model_validate(item)

    async def get_by_id(self, capture_id: str, user_id: Optional[str] = None) -> Optional[CaptureRecord]:
        stmt = select(CaptureItem).where(CaptureItem.id == capture_id)
        if user_id is not None:
            stmt = stmt.where(CaptureItem.user_id == user_id)
        async with self.session_factory() as session:
            item = (await session.execute(stmt)).scalar_one_or_none()
            return CaptureRecord.model_validate(item) if item else None

    async def get_by_normalized_url(self, user_id: str, normalized_url: str) -> Optional[CaptureRecord]:
        stmt = select(CaptureItem).where(
            CaptureItem.user_id == user_id,
            CaptureItem.normalized_url == normalized_url,
        )
        async with self.session_factory() as session:
            item = (await session.execute(stmt)).scalar_one_or_none()
            return CaptureRecord.model_validate(item) if item else None

    async def update_status(self, capture_id: str, status: str, error_message: Optional[str] = None) -> None:
        await self.update_fields(capture_id, {"status": status, "error_message": error_message})

    async def update_fields(self, capture_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        async with self.session_factory() as session:
            await session.execute(
                update(CaptureItem).where(CaptureItem.id == capture_id).values(**fields)
            )
            await session.commit()

    async def find_by_platform_reference(self, user_id: str, key: str, value: str) -> Optional[CaptureRecord]:
        stmt = (
            select(CaptureItem)
            .where(
                CaptureItem.user_id == user_id,
                CaptureItem.platform_data[key].as_string() == str(value),
            )
            .order_by(CaptureItem.created_at)
            .limit(1)
        )
        async with self.session_factory() as session:
            item = (await session.execute(stmt)).scalar_one_or_none()
            return CaptureRecord.model_validate(item) if item else None

    async def list_stale_pending(self, older_than: datetime, limit: int) -> List[CaptureRecord]:
        stmt = (
            select(CaptureItem)
            .where(CaptureItem.status == STATUS_PENDING, CaptureItem.created_at < older_than)
            .order_by(CaptureItem.created_at)
            .limit(limit)
        )
        async with self.session_factory() as session:
            items = (await session.execute(stmt)).scalars().all()
            return [CaptureRecord.model_validate(item) for item in items]


class SqlNoteStore(_SqlStoreBase, NoteStore):
    """笔记存储（notes 表）"""

    async def create(self, user_id: str, raw_text: str, content_hash: str) -> NoteRecord:
        note = Note(
            user_id=user_id,
            raw_text=raw_text,
            content_hash=content_hash,
            status=STATUS_PENDING,
            processing_attempts=0,
            topics=[],
            disciplines=[],
            use_cases=[],
        )
        async with self.session_factory() as session:
            session.add(note)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateRecordError(
                    f"笔记已存在: user={user_id}, hash={content_hash[:12]}"
                ) from e
            await session.refresh(note)
            return NoteRecord.model_validate(note)

    async def get_by_id(self, note_id: str, user_id: Optional[str] = None) -> Optional[NoteRecord]:
        stmt = select(Note).where(Note.id == note_id)
        if user_id is not None:
            stmt = stmt.where(Note.user_id == user_id)
        async with self.session_factory() as session:
            note = (await session.execute(stmt)).scalar_one_or_none()
            return NoteRecord.model_validate(note) if note else None

    async def get_by_content_hash(self, user_id: str, content_hash: str) -> Optional[NoteRecord]:
        stmt = select(Note).where(Note.user_id == user_id, Note.content_hash == content_hash)
        async with self.session_factory() as session:
            note = (await session.execute(stmt)).scalar_one_or_none()
            return NoteRecord.model_validate(note) if note else None

    async def claim_for_processing(self, note_id: str) -> Optional[NoteRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                update(Note)
                .where(Note.id == note_id, Note.status.in_([STATUS_PENDING, STATUS_FAILED]))
                .values(
                    status=STATUS_PROCESSING,
                    error_message=None,
                    processing_attempts=Note.processing_attempts + 1,
                )
            )
            await session.commit()
            if result.rowcount == 0:
                return None
            note = (await session.execute(select(Note).where(Note.id == note_id))).scalar_one()
            return NoteRecord.model_validate(note)

    async def update_status(self, note_id: str, status: str, error_message: Optional[str] = None) -> None:
        await self.update_fields(note_id, {"status": status, "error_message": error_message})

    async def update_fields(self, note_id: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        async with self.session_factory() as session:
            await session.execute(update(Note).where(Note.id == note_id).values(**fields))
            await session.commit()

    async def list_notes(
        self,
        user_id: str,
        limit: int = 20,
        status: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> Tuple[List[NoteRecord], Optional[str]]:
        stmt = select(Note).where(Note.user_id == user_id)
        if status:
            stmt = stmt.where(Note.status == status)
        if cursor:
            created_at, note_id = decode_cursor(cursor)
            stmt = stmt.where(
                or_(
                    Note.created_at < created_at,
                    and_(Note.created_at == created_at, Note.id < note_id),
                )
            )
        # 多取一条判断是否还有下一页
        stmt = stmt.order_by(Note.created_at.desc(), Note.id.desc()).limit(limit + 1)

        async with self.session_factory() as session:
            notes = (await session.execute(stmt)).scalars().all()

        records = [NoteRecord.model_validate(n) for n in notes[:limit]]
        next_cursor = None
        if len(notes) > limit and records:
            last = records[-1]
            next_cursor = encode_cursor(last.created_at, last.id)
        return records, next_cursor

    async def list_stale_pending(self, older_than: datetime, limit: int) -> List[NoteRecord]:
        stmt = (
            select(Note)
            .where(Note.status == STATUS_PENDING, Note.created_at < older_than)
            .order_by(Note.created_at)
            .limit(limit)
        )
        async with self.session_factory() as session:
            notes = (await session.execute(stmt)).scalars().all()
            return [NoteRecord.model_validate(n) for n in notes]


class SqlContentLinkStore(_SqlStoreBase, ContentLinkStore):
    """内容链接存储（content_links 表）"""

    async def record_link(
        self,
        source_content_id: str,
        url: str,
        target_content_id: Optional[str] = None,
        link_type: str = "mentioned",
        status: str = "pending",
        error_message: Optional[str] = None,
    ) -> ContentLinkRecord:
        values = dict(
            target_content_id=target_content_id,
            link_type=link_type,
            status=status,
            error_message=error_message,
            processed_at=now_utc(),
        )
        stmt = select(ContentLink).where(
            ContentLink.source_content_id == source_content_id,
            ContentLink.url == url,
        )
        async with self.session_factory() as session:
            link = (await session.execute(stmt)).scalar_one_or_none()
            if link is None:
                link = ContentLink(source_content_id=source_content_id, url=url, **values)
                session.add(link)
            else:
                # 重复投递时覆盖上一次的结果
                for key, value in values.items():
                    setattr(link, key, value)
            try:
                await session.commit()
            except IntegrityError:
                # 并发写入同一条链接，读取胜出者
                await session.rollback()
                link = (await session.execute(stmt)).scalar_one()
            await session.refresh(link)
            return ContentLinkRecord.model_validate(link)

    async def list_for_source(self, source_content_id: str) -> List[ContentLinkRecord]:
        stmt = (
            select(ContentLink)
            .where(ContentLink.source_content_id == source_content_id)
            .order_by(ContentLink.created_at)
        )
        async with self.session_factory() as session:
            links = (await session.execute(stmt)).scalars().all()
            return [ContentLinkRecord.model_validate(link) for link in links]
