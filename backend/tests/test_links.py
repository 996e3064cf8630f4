"""
外链补全测试
"""
from app.services.enrichment import LinkEnricher

from conftest import FakeLinkScraper, InMemoryLinkStore

USER = "user-1"


async def make_capture(capture_store, url="https://x.com/alice/status/1"):
    return await capture_store.create(USER, url, url, "twitter")


def test_select_urls_dedupes_and_caps(capture_store):
    enricher = LinkEnricher(FakeLinkScraper(), capture_store, max_links=2)
    body = "https://a.example.com/1 https://a.example.com/1/ https://b.example.com/2 https://c.example.com/3"

    assert enricher.select_urls(body) == ["https://a.example.com/1", "https://b.example.com/2"]
    assert enricher.select_urls(None) == []


async def test_timeout_becomes_error_entry(capture_store):
    enricher = LinkEnricher(FakeLinkScraper(delay=1), capture_store, timeout=0.01)
    capture = await make_capture(capture_store)

    results = await enricher.enrich_links(capture, "read https://slow.example.com/a")

    assert len(results) == 1
    assert results[0].url == "https://slow.example.com/a"
    assert "timeout" in results[0].error


async def test_results_keep_selection_order(capture_store):
    enricher = LinkEnricher(FakeLinkScraper(failing=("https://b.example.com/2",)), capture_store)
    capture = await make_capture(capture_store)

    results = await enricher.enrich_links(capture, "https://a.example.com/1 https://b.example.com/2")

    assert [r.url for r in results] == ["https://a.example.com/1", "https://b.example.com/2"]
    assert results[0].error is None
    assert "connection reset" in results[1].error


async def test_link_graph_reuses_existing_capture(capture_store, queue):
    existing = await capture_store.create(USER, "https://blog.example.com/post", "https://blog.example.com/post", "web")
    link_store = InMemoryLinkStore()
    enricher = LinkEnricher(FakeLinkScraper(), capture_store, link_store=link_store, queue=queue, auto_capture=True)
    capture = await make_capture(capture_store)

    await enricher.enrich_links(capture, "see https://www.blog.example.com/post/?utm_source=x")

    links = await link_store.list_for_source(capture.id)
    assert len(links) == 1
    assert links[0].target_content_id == existing.id
    assert links[0].status == "skipped"
    assert links[0].link_type == "embedded"
    assert queue.captures == []


async def test_auto_capture_creates_and_enqueues_linked_record(capture_store, queue):
    link_store = InMemoryLinkStore()
    enricher = LinkEnricher(FakeLinkScraper(), capture_store, link_store=link_store, queue=queue, auto_capture=True)
    capture = await make_capture(capture_store)

    await enricher.enrich_links(capture, "see https://new.example.com/article", trace_id="trace-9")

    created = await capture_store.get_by_normalized_url(USER, "https://new.example.com/article")
    assert created is not None
    assert created.source_type == "web"
    links = await link_store.list_for_source(capture.id)
    assert links[0].target_content_id == created.id
    assert links[0].status == "pending"
    assert len(queue.captures) == 1
    assert queue.captures[0].capture_id == created.id
    assert queue.captures[0].trace_id == "trace-9"


async def test_failed_links_are_recorded_without_auto_capture(capture_store, queue):
    link_store = InMemoryLinkStore()
    enricher = LinkEnricher(
        FakeLinkScraper(failing=("https://broken.example.com/x",)),
        capture_store,
        link_store=link_store,
        queue=queue,
        auto_capture=True,
    )
    capture = await make_capture(capture_store)

    await enricher.enrich_links(capture, "https://broken.example.com/x")

    links = await link_store.list_for_source(capture.id)
    assert links[0].target_content_id is None
    assert "connection reset" in links[0].error_message
    assert await capture_store.get_by_normalized_url(USER, "https://broken.example.com/x") is None
    assert queue.captures == []


async def test_link_store_failure_does_not_fail_enrichment(capture_store):
    class BrokenLinkStore(InMemoryLinkStore):
        async def record_link(self, *args, **kwargs):
            raise RuntimeError("db down")

    enricher = LinkEnricher(FakeLinkScraper(), capture_store, link_store=BrokenLinkStore())
    capture = await make_capture(capture_store)

    results = await enricher.enrich_links(capture, "https://a.example.com/1")

    assert len(results) == 1
    assert results[0].error is None
