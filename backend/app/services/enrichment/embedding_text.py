"""
向量输入文本构建

正文、外链、线程全文各自按字符上限截断，整体再由 EmbeddingService 按 Token 上限截断
"""
from typing import Iterable, List, Optional

from app.config import settings
from app.schemas.capture import LinkedContent
from app.utils.text_normalize import clip


def build_embedding_text(
    title: Optional[str] = None,
    author: Optional[str] = None,
    body_text: Optional[str] = None,
    summary: Optional[str] = None,
    topics: Optional[Iterable[str]] = None,
    description: Optional[str] = None,
    linked_content: Optional[List[LinkedContent]] = None,
    thread_text: Optional[str] = None,
) -> str:
    """
    拼接向量输入

    Args:
        title: 标题
        author: 作者（名称或账号）
        body_text: 正文，截取前 embedding_body_chars 个字符
        summary: 摘要
        topics: 主题
        description: 描述（与摘要相同时省略）
        linked_content: 外链内容，抓取失败的条目跳过
        thread_text: 线程全文

    Returns:
        拼接后的文本；没有任何内容时返回空字符串
    """
    parts: List[str] = []

    if title:
        parts.append(f"Title: {title}")
    if summary:
        parts.append(f"Summary: {summary}")
    if description and description != summary:
        parts.append(f"Description: {description}")
    if author:
        parts.append(f"Author: {author}")

    topics = [t for t in (topics or []) if t]
    if topics:
        parts.append(f"Topics: {', '.join(topics)}")

    if body_text:
        parts.append(f"Content: {clip(body_text, settings.embedding_body_chars)}")

    if thread_text and thread_text != body_text:
        parts.append(f"Thread: {clip(thread_text, settings.embedding_thread_chars)}")

    for link in linked_content or []:
        if link.error:
            continue
        link_parts = [p for p in (link.title, link.description) if p]
        if link.body_text:
            link_parts.append(clip(link.body_text, settings.embedding_link_chars))
        if link_parts:
            parts.append(f"Linked ({link.url}): " + "\n".join(link_parts))

    return "\n\n".join(parts)
