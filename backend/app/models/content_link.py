"""
内容链接模型

对应 content_links 表
记录某条采集内容中提及的外部URL，可选关联到另一条采集记录
"""
import uuid
from sqlalchemy import Column, String, DateTime, Text, UniqueConstraint
from .base import Base


class ContentLink(Base):
    """内容链接（有向边）"""

    __tablename__ = "content_links"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), comment="主键ID")
    source_content_id = Column(String(36), nullable=False, index=True, comment="来源采集记录ID")
    target_content_id = Column(String(36), nullable=True, index=True, comment="目标采集记录ID")
    url = Column(String(2048), nullable=False, comment="链接URL")
    link_type = Column(String(20), default="mentioned", nullable=False, comment="链接类型（embedded|mentioned|quote）")
    status = Column(String(20), default="pending", nullable=False, comment="状态（pending|skipped）")
    error_message = Column(Text, nullable=True, comment="抓取错误")
    processed_at = Column(DateTime, nullable=True, comment="处理时间")

    __table_args__ = (
        UniqueConstraint("source_content_id", "url", name="uq_content_links_source_url"),
        {"comment": "内容链接表"}
    )

    def __repr__(self):
        return f"<ContentLink(source={self.source_content_id}, url={self.url[:40]})>"
