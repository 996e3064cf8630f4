"""
采集记录模型

对应 content_items 表
一条记录对应用户保存的一个URL，记录其处理生命周期与分析结果
"""
import uuid
from sqlalchemy import Column, Integer, String, DateTime, Text, Index, UniqueConstraint
from .base import Base, JSONType, VectorType
from app.config import settings
from app.utils.timezone import now_utc


class CaptureItem(Base):
    """采集记录"""

    __tablename__ = "content_items"

    # ========== 主键 ==========
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), comment="主键ID")
    user_id = Column(String(100), nullable=False, index=True, comment="所属用户")

    # ========== 输入 ==========
    source_url = Column(String(2048), nullable=False, comment="原始URL")
    normalized_url = Column(String(2048), nullable=False, comment="归一化URL（去重键）")
    source_type = Column(
        String(20),
        nullable=False,
        index=True,
        comment="来源类型（twitter|instagram|linkedin|pinterest|web）"
    )

    # ========== 生命周期 ==========
    status = Column(
        String(20),
        default="pending",
        nullable=False,
        index=True,
        comment="处理状态（pending|processing|complete|failed|failed_permanent）"
    )
    error_message = Column(Text, nullable=True, comment="失败原因")
    delivery_attempts = Column(Integer, default=0, nullable=False, comment="已处理次数")

    # ========== 抽取字段 ==========
    title = Column(String(1000), nullable=True, comment="标题")
    description = Column(Text, nullable=True, comment="描述")
    body_text = Column(Text, nullable=True, comment="正文")
    author_name = Column(String(255), nullable=True, comment="作者名")
    author_handle = Column(String(255), nullable=True, comment="作者账号")
    published_at = Column(DateTime, nullable=True, comment="发布时间")
    images = Column(JSONType, nullable=True, comment="图片URL列表")
    videos = Column(JSONType, nullable=True, comment="视频列表")

    # ========== 分析字段 ==========
    summary = Column(Text, nullable=True, comment="摘要")
    topics = Column(JSONType, nullable=True, comment="主题列表")
    disciplines = Column(JSONType, nullable=True, comment="学科列表")
    use_cases = Column(JSONType, nullable=True, comment="用途列表")
    content_type = Column(String(50), nullable=True, comment="内容类型")

    # ========== 线程与平台数据 ==========
    thread_root_id = Column(String(36), nullable=True, index=True, comment="线程根记录ID（弱引用）")
    parent_id = Column(String(36), nullable=True, index=True, comment="父记录ID")
    thread_position = Column(Integer, default=0, nullable=False, comment="线程内位置（从1开始，0表示未关联）")
    platform_data = Column(JSONType, nullable=True, comment="平台数据（thread/linked_content/screenshot等）")

    # ========== 向量 ==========
    embedding = Column(VectorType(settings.embedding_dimension), nullable=True, comment="语义向量")
    embedding_generated_at = Column(DateTime, nullable=True, comment="向量生成时间")

    # ========== 时间 ==========
    captured_at = Column(DateTime, default=now_utc, nullable=False, comment="提交时间")
    processed_at = Column(DateTime, nullable=True, comment="处理完成时间")

    # ========== 索引定义 ==========
    __table_args__ = (
        UniqueConstraint("user_id", "normalized_url", name="uq_content_items_user_url"),
        Index("idx_content_items_status_created", "status", "created_at"),
        {"comment": "采集记录表"}
    )

    def __repr__(self):
        return f"<CaptureItem(id={self.id}, source_type={self.source_type}, status={self.status})>"
