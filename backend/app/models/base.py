"""
数据库基础模型
"""
from sqlalchemy import Column, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, declared_attr
from pgvector.sqlalchemy import Vector
from app.utils.timezone import now_utc


# PostgreSQL 上使用 JSONB / pgvector，其他方言（测试用 SQLite）退化为 JSON
JSONType = JSON().with_variant(JSONB(), "postgresql")


def VectorType(dim: int):
    """向量列类型（PostgreSQL 使用 pgvector）"""
    return JSON().with_variant(Vector(dim), "postgresql")


class BaseModel:
    """所有模型的基类（时间统一为UTC）"""

    @declared_attr
    def __tablename__(cls) -> str:
        """自动生成表名（蛇形命名）"""
        import re
        name = cls.__name__
        # 将驼峰命名转为蛇形命名
        name = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', name)
        name = re.sub('([a-z0-9])([A-Z])', r'\1_\2', name).lower()
        return name

    created_at = Column(DateTime, default=now_utc, nullable=False, comment="创建时间")
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc, nullable=False, comment="更新时间")


# 创建声明式基类
Base = declarative_base(cls=BaseModel)
