"""
LLM Provider 基类

定义统一的 LLM 调用接口：对话补全与文本向量化
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
import httpx


class BaseLLMProvider(ABC):
    """LLM Provider 基类"""

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 2000,
        timeout: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        初始化 Provider

        Args:
            model: 模型名称
            api_key: API 密钥
            base_url: API 基础 URL（可选）
            temperature: 温度参数
            max_tokens: 最大 Token 数
            timeout: 超时时间（秒）
            transport: 自定义 httpx 传输层（测试时注入）
        """
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _parse_chat_response(data: Dict[str, Any], model: str) -> Dict[str, Any]:
        choice = data["choices"][0]
        return {
            "content": choice["message"]["content"],
            "usage": data.get("usage", {}),
            "model": data.get("model", model),
            "finish_reason": choice.get("finish_reason")
        }

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        **kwargs
    ) -> Dict[str, Any]:
        """
        对话补全

        Args:
            messages: 消息列表 [{"role": "user", "content": "..."}, ...]
            **kwargs: 其他参数（temperature、max_tokens、response_format="json"）

        Returns:
            {
                "content": "回复内容",
                "usage": {"prompt_tokens": 100, "completion_tokens": 50},
                "model": "模型名称"
            }
        """
        pass

    @abstractmethod
    async def embedding(
        self,
        texts: List[str],
        **kwargs
    ) -> List[List[float]]:
        """
        文本向量化

        Args:
            texts: 文本列表
            **kwargs: 其他参数

        Returns:
            向量列表 [[0.1, 0.2, ...], ...]
        """
        pass

    def get_provider_name(self) -> str:
        """获取 Provider 名称"""
        return self.__class__.__name__.replace("Provider", "").lower()
