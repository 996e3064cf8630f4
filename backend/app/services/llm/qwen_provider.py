"""
Qwen Provider 实现

支持本地部署的 Qwen 模型（通过 vLLM 提供 OpenAI 兼容 API）
"""
from typing import List, Dict, Any
from .openai_provider import OpenAIProvider


class QwenProvider(OpenAIProvider):
    """Qwen Provider"""

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        **kwargs
    ) -> Dict[str, Any]:
        """
        对话补全

        Qwen3 默认开启思考模式，会在输出中夹带推理内容，分析场景下关闭
        """
        payload = self._chat_payload(messages, **kwargs)
        payload["model"] = self.model
        payload["chat_template_kwargs"] = {"enable_thinking": False}
        data = await self._post_json(f"{self.base_url}/chat/completions", payload, self._headers())
        return self._parse_chat_response(data, self.model)
