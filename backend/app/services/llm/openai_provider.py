"""
OpenAI Provider 实现

支持 OpenAI、Azure OpenAI 以及任何 OpenAI 兼容服务
"""
from typing import List, Dict, Any, Optional
from .base import BaseLLMProvider


class OpenAIProvider(BaseLLMProvider):
    """OpenAI Provider"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        # OpenAI 默认 base_url
        if not self.base_url:
            self.base_url = "https://api.openai.com/v1"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}"
        }

    def _chat_payload(self, messages: List[Dict[str, str]], **kwargs) -> Dict[str, Any]:
        payload = {
            "messages": messages,
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        # JSON 输出模式
        if kwargs.get("response_format") == "json":
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        **kwargs
    ) -> Dict[str, Any]:
        """对话补全"""
        payload = self._chat_payload(messages, **kwargs)
        payload["model"] = self.model
        data = await self._post_json(f"{self.base_url}/chat/completions", payload, self._headers())
        return self._parse_chat_response(data, self.model)

    async def embedding(
        self,
        texts: List[str],
        **kwargs
    ) -> List[List[float]]:
        """文本向量化"""
        payload = {
            "model": kwargs.get("model", self.model),
            "input": texts
        }
        if kwargs.get("dimensions"):
            payload["dimensions"] = kwargs["dimensions"]
        data = await self._post_json(f"{self.base_url}/embeddings", payload, self._headers())
        # 按 index 排序，保证与输入顺序一致
        items = sorted(data["data"], key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in items]


class OpenAICompatibleProvider(OpenAIProvider):
    """OpenAI-Compatible Provider

    支持任何兼容 OpenAI API 格式的服务，例如：
    - Ollama
    - LM Studio
    - vLLM
    - LocalAI
    """

    def __init__(
        self,
        model: str,
        api_key: str = "not-needed",
        base_url: str = "http://localhost:11434/v1",
        **kwargs
    ):
        super().__init__(model, api_key, base_url=base_url, **kwargs)

    def get_provider_name(self) -> str:
        """获取 Provider 名称"""
        return "openai_compatible"


class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI Provider"""

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str,
        api_version: str = "2024-02-15-preview",
        deployment_name: Optional[str] = None,
        **kwargs
    ):
        """
        初始化 Azure OpenAI Provider

        Args:
            model: 模型名称
            api_key: API 密钥
            endpoint: Azure endpoint
            api_version: API 版本
            deployment_name: 部署名称
        """
        super().__init__(model, api_key, **kwargs)
        self.endpoint = endpoint.rstrip("/")
        self.api_version = api_version
        self.deployment_name = deployment_name or model

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "api-key": self.api_key
        }

    def _deployment_url(self, operation: str) -> str:
        return (
            f"{self.endpoint}/openai/deployments/{self.deployment_name}/"
            f"{operation}?api-version={self.api_version}"
        )

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        **kwargs
    ) -> Dict[str, Any]:
        """对话补全（Azure 格式，模型由部署决定）"""
        payload = self._chat_payload(messages, **kwargs)
        data = await self._post_json(self._deployment_url("chat/completions"), payload, self._headers())
        return self._parse_chat_response(data, self.deployment_name)

    async def embedding(
        self,
        texts: List[str],
        **kwargs
    ) -> List[List[float]]:
        """文本向量化（Azure 格式）"""
        data = await self._post_json(self._deployment_url("embeddings"), {"input": texts}, self._headers())
        items = sorted(data["data"], key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in items]
