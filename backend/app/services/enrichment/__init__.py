"""采集处理流水线"""
from .embedding_text import build_embedding_text
from .links import LinkEnricher
from .media import MediaProcessor
from .note_processor import NoteProcessor
from .orchestrator import EnrichmentOrchestrator
from .thread_linker import ThreadLinker, ThreadLinkResult

__all__ = [
    "build_embedding_text",
    "LinkEnricher",
    "MediaProcessor",
    "NoteProcessor",
    "EnrichmentOrchestrator",
    "ThreadLinker",
    "ThreadLinkResult",
]
