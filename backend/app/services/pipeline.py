"""
流水线组装

按配置创建各协作者并注入编排器/入口服务；测试中直接构造对象并传入替身
"""
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.services.analysis_service import ContentAnalyzer, NoteAnalyzer
from app.services.embedding_service import EmbeddingService
from app.services.enrichment import (
    EnrichmentOrchestrator,
    LinkEnricher,
    MediaProcessor,
    NoteProcessor,
    ThreadLinker,
)
from app.services.ingestion import IngestionService
from app.services.media_store import get_media_store
from app.services.queue import BaseQueue, CeleryQueue
from app.services.reconciliation_service import ReconciliationService
from app.services.store import SqlCaptureStore, SqlContentLinkStore, SqlNoteStore
from scrapers import LinkScraper, ScraperRegistry, ThreadFetcher


def build_ingestion_service(
    session_factory: Optional[async_sessionmaker] = None,
    queue: Optional[BaseQueue] = None
) -> IngestionService:
    return IngestionService(
        capture_store=SqlCaptureStore(session_factory),
        note_store=SqlNoteStore(session_factory),
        queue=queue or CeleryQueue(),
    )


def build_orchestrator(
    session_factory: Optional[async_sessionmaker] = None,
    queue: Optional[BaseQueue] = None
) -> EnrichmentOrchestrator:
    """
    创建采集处理编排器

    Raises:
        ConfigurationError: LLM 凭证或媒体存储配置缺失
    """
    queue = queue or CeleryQueue()
    capture_store = SqlCaptureStore(session_factory)
    return EnrichmentOrchestrator(
        capture_store=capture_store,
        scrapers=ScraperRegistry(),
        analyzer=ContentAnalyzer(),
        embedder=EmbeddingService(),
        media_processor=MediaProcessor(get_media_store()),
        thread_linker=ThreadLinker(capture_store, queue),
        thread_resolver=ThreadFetcher(),
        link_enricher=LinkEnricher(
            LinkScraper(),
            capture_store,
            link_store=SqlContentLinkStore(session_factory),
            queue=queue,
        ),
        queue=queue,
    )


def build_note_processor(
    session_factory: Optional[async_sessionmaker] = None,
    queue: Optional[BaseQueue] = None
) -> NoteProcessor:
    """
    创建笔记处理器

    Raises:
        ConfigurationError: LLM 凭证缺失
    """
    return NoteProcessor(
        note_store=SqlNoteStore(session_factory),
        note_analyzer=NoteAnalyzer(),
        analyzer=ContentAnalyzer(),
        embedder=EmbeddingService(),
        queue=queue or CeleryQueue(),
    )


def build_reconciliation_service(
    session_factory: Optional[async_sessionmaker] = None,
    queue: Optional[BaseQueue] = None
) -> ReconciliationService:
    return ReconciliationService(
        capture_store=SqlCaptureStore(session_factory),
        note_store=SqlNoteStore(session_factory),
        queue=queue or CeleryQueue(),
    )
