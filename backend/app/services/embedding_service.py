"""
向量生成服务

将文本转换为固定维度的语义向量，输入按模型上限截断
"""
from abc import ABC, abstractmethod
from typing import List, Optional
import logging

from app.config import settings
from app.exceptions import EmbeddingError
from app.services.llm.base import BaseLLMProvider
from app.services.llm.factory import get_embedding_provider
from app.utils.token_manager import get_token_manager

logger = logging.getLogger(__name__)


class BaseEmbedder(ABC):
    """向量生成能力"""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """生成向量，失败时抛出 EmbeddingError"""


class EmbeddingService(BaseEmbedder):
    """基于 Embedding Provider 的向量生成"""

    def __init__(
        self,
        provider: Optional[BaseLLMProvider] = None,
        dimension: Optional[int] = None,
        max_tokens: Optional[int] = None
    ):
        self.provider = provider or get_embedding_provider()
        self.dimension = dimension or settings.embedding_dimension
        self.max_tokens = max_tokens or settings.embedding_max_tokens

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingError("向量输入为空")

        text = get_token_manager().truncate_text(text, self.max_tokens)

        try:
            vectors = await self.provider.embedding([text], dimensions=self.dimension)
        except Exception as e:
            raise EmbeddingError(f"向量生成失败: {e}") from e

        if not vectors or not vectors[0]:
            raise EmbeddingError("向量服务未返回结果")
        vector = vectors[0]
        if len(vector) != self.dimension:
            raise EmbeddingError(f"向量维度不匹配: 期望 {self.dimension}，实际 {len(vector)}")
        return vector
