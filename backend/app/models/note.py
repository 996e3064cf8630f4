"""
笔记模型

对应 notes 表
用户直接输入的文本，按内容哈希去重
"""
import uuid
from sqlalchemy import Column, Integer, String, DateTime, Text, Index, UniqueConstraint
from .base import Base, JSONType, VectorType
from app.config import settings


class Note(Base):
    """笔记"""

    __tablename__ = "notes"

    # ========== 主键 ==========
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), comment="主键ID")
    user_id = Column(String(100), nullable=False, index=True, comment="所属用户")

    # ========== 文本 ==========
    raw_text = Column(Text, nullable=False, comment="原始文本")
    content_hash = Column(String(64), nullable=False, comment="归一化文本的SHA-256")
    cleaned_text = Column(Text, nullable=True, comment="清理后的文本")
    expanded_text = Column(Text, nullable=True, comment="扩写后的文本")
    title = Column(String(500), nullable=True, comment="标题")
    short_title = Column(String(100), nullable=True, comment="短标题")

    # ========== 分析字段 ==========
    summary = Column(Text, nullable=True, comment="摘要")
    topics = Column(JSONType, nullable=True, comment="主题列表")
    disciplines = Column(JSONType, nullable=True, comment="学科列表")
    use_cases = Column(JSONType, nullable=True, comment="用途列表")
    llm_warnings = Column(JSONType, nullable=True, comment="LLM处理告警")
    llm_model = Column(String(100), nullable=True, comment="处理所用模型")
    llm_prompt_version = Column(String(20), nullable=True, comment="提示词版本")
    platform_data = Column(JSONType, nullable=True, comment="附加数据")

    # ========== 向量 ==========
    embedding = Column(VectorType(settings.embedding_dimension), nullable=True, comment="语义向量")
    embedding_generated_at = Column(DateTime, nullable=True, comment="向量生成时间")

    # ========== 生命周期 ==========
    status = Column(
        String(20),
        default="pending",
        nullable=False,
        index=True,
        comment="处理状态（pending|processing|complete|failed|failed_permanent）"
    )
    error_message = Column(Text, nullable=True, comment="失败原因")
    processing_attempts = Column(Integer, default=0, nullable=False, comment="处理次数")
    processed_at = Column(DateTime, nullable=True, comment="处理完成时间")

    # ========== 索引定义 ==========
    __table_args__ = (
        UniqueConstraint("user_id", "content_hash", name="uq_notes_user_hash"),
        Index("idx_notes_user_created", "user_id", "created_at"),
        {"comment": "笔记表"}
    )

    def __repr__(self):
        return f"<Note(id={self.id}, status={self.status})>"
