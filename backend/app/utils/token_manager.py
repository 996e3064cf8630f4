"""
Token 管理工具

用于控制向量与 LLM 输入的 Token 数，确保不超过模型的输入上限
"""
from typing import Optional
import tiktoken


class TokenManager:
    """
    Token 管理器

    基于 tiktoken 进行 Token 计数和截断
    """

    # 模型输入上限配置（Token数）
    MODEL_INPUT_LIMITS = {
        "text-embedding-3-small": 8191,
        "text-embedding-3-large": 8191,
        "text-embedding-ada-002": 8191,
        "gpt-4o": 128000,
        "gpt-4o-mini": 128000,
        "qwen3-32b": 32000,
    }

    def __init__(self, model: str = "text-embedding-3-small", encoding_name: str = "cl100k_base"):
        """
        初始化 Token 管理器

        Args:
            model: 模型名称
            encoding_name: tiktoken 编码名称
        """
        self.model = model
        self.input_limit = self.MODEL_INPUT_LIMITS.get(model, 8191)
        self.encoding = tiktoken.get_encoding(encoding_name)

    def count_tokens(self, text: str) -> int:
        """计算文本的 Token 数量"""
        return len(self.encoding.encode(text))

    def truncate_text(self, text: str, max_tokens: Optional[int] = None) -> str:
        """
        截断文本到指定 Token 数（保留开头）

        Args:
            text: 输入文本
            max_tokens: 最大 Token 数，默认取模型输入上限

        Returns:
            截断后的文本
        """
        max_tokens = max_tokens or self.input_limit
        tokens = self.encoding.encode(text)
        if len(tokens) <= max_tokens:
            return text
        return self.encoding.decode(tokens[:max_tokens])


# 全局实例（延迟初始化，避免导入时加载编码表）
_token_manager: Optional[TokenManager] = None


def get_token_manager(model: str = "text-embedding-3-small") -> TokenManager:
    """获取 Token 管理器实例"""
    global _token_manager
    if _token_manager is None or _token_manager.model != model:
        _token_manager = TokenManager(model=model)
    return _token_manager
