# PDF 文本提取
import io
import logging
from typing import Any, Dict, Optional

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from app.exceptions import ScrapeError
from .link_extractor import sanitize_text

logger = logging.getLogger(__name__)


def extract_pdf(data: bytes, max_pages: Optional[int] = None) -> Dict[str, Any]:
    """
    解析 PDF 字节流

    Returns:
        {"text", "title", "author", "page_count"}

    Raises:
        ScrapeError: 无法解析
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = reader.pages if max_pages is None else reader.pages[:max_pages]
        texts = []
        for page in pages:
            texts.append(page.extract_text() or '')
        metadata = reader.metadata
    except (PdfReadError, ValueError) as e:
        raise ScrapeError(f'PDF 解析失败: {e}') from e

    return {
        'text': sanitize_text(' '.join(texts)),
        'title': (metadata.title if metadata else None) or None,
        'author': (metadata.author if metadata else None) or None,
        'page_count': len(reader.pages),
    }
