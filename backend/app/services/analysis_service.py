"""
内容分析服务

- ContentAnalyzer：为采集内容生成摘要、主题、学科、用途与内容类型
- NoteAnalyzer：清理笔记文本并生成标题

两者都通过 LLM Provider 以 JSON 模式调用，解析失败的处理方式不同：
内容分析失败会终止本次处理，笔记清理在输出无法解析时退化为规则结果
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import json
import logging
import re

from app.config import settings
from app.exceptions import AnalysisError
from app.schemas.capture import AnalysisResult, ExtractedContent, NoteAnalysisResult
from app.services.llm.base import BaseLLMProvider
from app.services.llm.factory import get_llm_provider
from app.utils.text_normalize import clip

logger = logging.getLogger(__name__)


CONTENT_TYPES = ("post", "article", "thread", "image", "video", "paper", "note")

NOTE_PROMPT_VERSION = "1.0"

ANALYSIS_SYSTEM_PROMPT = """You analyze saved content for a personal knowledge archive.
Return STRICT JSON only, no markdown, with these fields:
{
  "summary": "2-3 sentence summary of the core idea",
  "topics": ["3-7 short lowercase topic tags"],
  "discipline": "the single primary discipline (e.g. computer science, design, economics)",
  "useCases": ["1-4 ways the reader might use this content"],
  "contentType": "post | article | thread | image | video | paper | note"
}"""

NOTE_SYSTEM_PROMPT = """You are a note processing assistant. Clean up and title raw notes while preserving the writer's voice and intent.

Rules:
1. OUTPUT STRICT JSON ONLY
2. NEVER add facts, claims, or intent not present in the original note
3. cleanedText fixes grammar, punctuation and typos only, no rewording
4. expandedText is optional: only when the note is very terse and expansion adds clarity
5. warnings lists unclear elements such as ambiguous references or acronyms

Output:
{
  "cleanedText": "string",
  "expandedText": "string or null",
  "mainTitle": "5-10 word title",
  "shortTitle": "1-3 word label, max 32 chars",
  "warnings": ["strings"]
}"""


def parse_json_content(content: str) -> Dict[str, Any]:
    """
    解析 LLM 返回的 JSON

    兼容 ```json 代码块包裹和前后夹带说明文字的情况
    """
    text = (content or "").strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    try:
        result = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", text, re.DOTALL)
        if not match:
            raise
        result = json.loads(match.group(0))
    if not isinstance(result, dict):
        raise ValueError("LLM 输出不是 JSON 对象")
    return result


def _string_list(value: Any, limit: int = 10) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()][:limit]


class BaseAnalyzer(ABC):
    """内容分析能力"""

    @abstractmethod
    async def analyze(
        self,
        content: ExtractedContent,
        source_type: str,
        url: Optional[str] = None
    ) -> AnalysisResult:
        """分析内容，失败时抛出 AnalysisError"""


class BaseNoteAnalyzer(ABC):
    """笔记清理能力"""

    model_name: str = ""
    prompt_version: str = NOTE_PROMPT_VERSION

    @abstractmethod
    async def analyze(self, raw_text: str) -> NoteAnalysisResult:
        """清理笔记文本"""


class ContentAnalyzer(BaseAnalyzer):
    """基于 LLM 的内容分析"""

    def __init__(self, llm_provider: Optional[BaseLLMProvider] = None):
        self.llm_provider = llm_provider or get_llm_provider()

    def _build_prompt(self, content: ExtractedContent, source_type: str, url: Optional[str]) -> str:
        parts = [f"Source type: {source_type}"]
        if url:
            parts.append(f"URL: {url}")
        if content.title:
            parts.append(f"Title: {content.title}")
        if content.author_name or content.author_handle:
            parts.append(f"Author: {content.author_name or ''} (@{content.author_handle or ''})")
        if content.description:
            parts.append(f"Description: {clip(content.description, 1000)}")
        if content.body_text:
            parts.append(f"Content:\n{clip(content.body_text, settings.analysis_body_chars)}")

        # 线程全文与外链内容（由编排器写入 platform_data）
        thread = content.platform_data.get("thread") or {}
        if thread.get("fullText"):
            parts.append(f"Full thread:\n{clip(thread['fullText'], 4000)}")
        for link in content.platform_data.get("linked_content") or []:
            if link.get("error"):
                continue
            parts.append(
                f"Linked content ({link.get('url')}): {link.get('title') or ''}\n"
                f"{clip(link.get('bodyText') or link.get('description') or '', 1500)}"
            )
        if content.images:
            parts.append(f"Images attached: {len(content.images)}")
        if content.videos:
            parts.append(f"Videos attached: {len(content.videos)}")
        return "\n\n".join(parts)

    def _parse(self, content: str) -> AnalysisResult:
        data = parse_json_content(content)
        summary = str(data.get("summary") or "").strip()
        if not summary:
            raise ValueError("缺少 summary 字段")
        content_type = str(data.get("contentType") or "post").strip().lower()
        if content_type not in CONTENT_TYPES:
            content_type = "post"
        disciplines = _string_list(data.get("disciplines") or data.get("discipline"), limit=3)
        return AnalysisResult(
            summary=summary,
            topics=[t.lower() for t in _string_list(data.get("topics"))],
            disciplines=disciplines,
            use_cases=_string_list(data.get("useCases") or data.get("use_cases"), limit=5),
            content_type=content_type,
        )

    async def analyze(
        self,
        content: ExtractedContent,
        source_type: str,
        url: Optional[str] = None
    ) -> AnalysisResult:
        prompt = self._build_prompt(content, source_type, url)
        try:
            response = await self.llm_provider.chat_completion(
                messages=[
                    {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format="json",
            )
        except Exception as e:
            raise AnalysisError(f"LLM 调用失败: {e}") from e

        try:
            result = self._parse(response.get("content", ""))
        except (ValueError, TypeError) as e:
            raise AnalysisError(f"无法解析分析结果: {e}") from e

        logger.info(
            f"分析完成 - topics={result.topics}, "
            f"completion_tokens={response.get('usage', {}).get('completion_tokens', 0)}"
        )
        return result


class NoteAnalyzer(BaseNoteAnalyzer):
    """基于 LLM 的笔记清理"""

    def __init__(self, llm_provider: Optional[BaseLLMProvider] = None):
        self.llm_provider = llm_provider or get_llm_provider()
        self.model_name = self.llm_provider.model

    @staticmethod
    def fallback(raw_text: str, warning: Optional[str] = None) -> NoteAnalysisResult:
        """LLM 输出不可用时的规则结果：标题取前 8 个词"""
        words = raw_text.strip().split()
        title = " ".join(words[:8]) + ("..." if len(words) > 8 else "")
        return NoteAnalysisResult(
            cleaned_text=raw_text.strip(),
            expanded_text=None,
            title=title or "Untitled note",
            short_title=" ".join(words[:2])[:32] or None,
            warnings=[warning] if warning else [],
        )

    def _parse(self, content: str, raw_text: str) -> NoteAnalysisResult:
        data = parse_json_content(content)
        title = data.get("mainTitle") or data.get("title")
        if not isinstance(title, str) or not title.strip() or len(title) > 120:
            return self.fallback(raw_text, "title generation failed")
        short_title = data.get("shortTitle")
        if not isinstance(short_title, str) or not short_title.strip() or len(short_title) > 32:
            short_title = " ".join(w for w in title.split() if len(w) > 2)[:32] or None
        expanded = data.get("expandedText")
        return NoteAnalysisResult(
            cleaned_text=str(data.get("cleanedText") or raw_text).strip(),
            expanded_text=expanded if isinstance(expanded, str) and expanded.strip() else None,
            title=title.strip(),
            short_title=short_title,
            warnings=_string_list(data.get("warnings")),
        )

    async def analyze(self, raw_text: str) -> NoteAnalysisResult:
        try:
            response = await self.llm_provider.chat_completion(
                messages=[
                    {"role": "system", "content": NOTE_SYSTEM_PROMPT},
                    {"role": "user", "content": f"Process this note:\n---\n{raw_text}\n---"},
                ],
                response_format="json",
            )
        except Exception as e:
            raise AnalysisError(f"LLM 调用失败: {e}") from e

        try:
            return self._parse(response.get("content", ""), raw_text)
        except (ValueError, TypeError) as e:
            logger.warning(f"笔记清理结果无法解析，使用规则结果: {e}")
            return self.fallback(raw_text, "llm output unparseable")
