"""LLM 服务模块"""
from .base import BaseLLMProvider
from .factory import get_llm_provider, get_embedding_provider
from .qwen_provider import QwenProvider
from .openai_provider import OpenAIProvider, AzureOpenAIProvider, OpenAICompatibleProvider

__all__ = [
    "BaseLLMProvider",
    "get_llm_provider",
    "get_embedding_provider",
    "QwenProvider",
    "OpenAIProvider",
    "AzureOpenAIProvider",
    "OpenAICompatibleProvider",
]
