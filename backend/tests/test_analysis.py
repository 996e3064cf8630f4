"""
内容分析与笔记清理测试（LLM 输出解析）
"""
import json

import pytest

from app.exceptions import AnalysisError
from app.schemas.capture import ExtractedContent
from app.services.analysis_service import ContentAnalyzer, NoteAnalyzer, parse_json_content


class FakeLLMProvider:
    model = "fake-llm"

    def __init__(self, content="", error=None):
        self.content = content
        self.error = error
        self.messages = []

    async def chat_completion(self, messages, **kwargs):
        self.messages.append(messages)
        if self.error:
            raise self.error
        return {"content": self.content, "usage": {"completion_tokens": 12}}


def test_parse_json_content_handles_code_fences_and_prose():
    assert parse_json_content('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_content('Here you go: {"a": 2} hope it helps') == {"a": 2}
    with pytest.raises(ValueError):
        parse_json_content("[1, 2]")


async def test_content_analysis_normalizes_fields():
    provider = FakeLLMProvider(json.dumps({
        "summary": "It explains testing.",
        "topics": ["Testing", "Python"],
        "discipline": "computer science",
        "useCases": ["reference"],
        "contentType": "Essay",
    }))
    analyzer = ContentAnalyzer(llm_provider=provider)
    content = ExtractedContent(
        title="Post",
        body_text="Body",
        platform_data={
            "thread": {"fullText": "whole thread"},
            "linked_content": [
                {"url": "https://a.example.com", "title": "Linked A", "bodyText": "linked body"},
                {"url": "https://b.example.com", "error": "HTTP 404"},
            ],
        },
    )

    result = await analyzer.analyze(content, "twitter", "https://x.com/a/status/1")

    assert result.summary == "It explains testing."
    assert result.topics == ["testing", "python"]
    assert result.disciplines == ["computer science"]
    assert result.use_cases == ["reference"]
    assert result.content_type == "post"

    prompt = provider.messages[0][1]["content"]
    assert "Full thread:\nwhole thread" in prompt
    assert "Linked content (https://a.example.com): Linked A" in prompt
    assert "b.example.com" not in prompt


async def test_content_analysis_without_summary_fails():
    analyzer = ContentAnalyzer(llm_provider=FakeLLMProvider('{"topics": ["x"]}'))

    with pytest.raises(AnalysisError):
        await analyzer.analyze(ExtractedContent(body_text="b"), "web")


async def test_content_analysis_llm_error_is_analysis_error():
    analyzer = ContentAnalyzer(llm_provider=FakeLLMProvider(error=RuntimeError("timeout")))

    with pytest.raises(AnalysisError, match="timeout"):
        await analyzer.analyze(ExtractedContent(body_text="b"), "web")


async def test_note_analysis_uses_llm_output():
    provider = FakeLLMProvider(json.dumps({
        "cleanedText": "Call Bob about the Q3 plan.",
        "expandedText": None,
        "mainTitle": "Call Bob About Q3 Plan",
        "shortTitle": "Q3 Plan",
        "warnings": ["Q3 is ambiguous"],
    }))
    analyzer = NoteAnalyzer(llm_provider=provider)

    result = await analyzer.analyze("call bob abt q3 plan")

    assert analyzer.model_name == "fake-llm"
    assert result.cleaned_text == "Call Bob about the Q3 plan."
    assert result.expanded_text is None
    assert result.title == "Call Bob About Q3 Plan"
    assert result.short_title == "Q3 Plan"
    assert result.warnings == ["Q3 is ambiguous"]


async def test_note_analysis_falls_back_on_unparseable_output():
    analyzer = NoteAnalyzer(llm_provider=FakeLLMProvider("sorry, I cannot help"))

    result = await analyzer.analyze("one two three four five six seven eight nine ten")

    assert result.cleaned_text == "one two three four five six seven eight nine ten"
    assert result.title == "one two three four five six seven eight..."
    assert result.short_title == "one two"
    assert result.warnings == ["llm output unparseable"]


async def test_note_analysis_derives_short_title_when_missing():
    analyzer = NoteAnalyzer(llm_provider=FakeLLMProvider(json.dumps({
        "cleanedText": "text",
        "mainTitle": "Plan the garden layout",
    })))

    result = await analyzer.analyze("text")

    assert result.short_title == "Plan the garden layout"


async def test_note_analysis_llm_error_aborts():
    analyzer = NoteAnalyzer(llm_provider=FakeLLMProvider(error=RuntimeError("503")))

    with pytest.raises(AnalysisError):
        await analyzer.analyze("text")
