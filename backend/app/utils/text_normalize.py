import hashlib
import re
import unicodedata

# 笔记文本归一化：Unicode NFC、统一换行、压空白


def normalize_note_text(text: str) -> str:
    if not text:
        return ""
    text = unicodedata.normalize("NFC", text)
    # 统一换行
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    # 压缩多余空白
    text = re.sub(r"\s+", " ", text).strip()
    return text


def content_hash(text: str) -> str:
    """归一化后文本的 SHA-256（十六进制）"""
    return hashlib.sha256(normalize_note_text(text).encode("utf-8")).hexdigest()


def clip(text: str, max_chars: int) -> str:
    """按字符数截取前缀"""
    if not text:
        return ""
    return text if len(text) <= max_chars else text[:max_chars]
