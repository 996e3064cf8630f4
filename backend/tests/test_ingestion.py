"""
采集入口测试：校验、去重、入队
"""
import asyncio

import pytest

from app.exceptions import InvalidCaptureError
from app.services.ingestion import IngestionService

from conftest import FakeQueue


@pytest.fixture
def service(capture_store, note_store, queue):
    return IngestionService(capture_store, note_store, queue)


async def test_submit_capture_creates_pending_record_and_enqueues(service, capture_store, queue):
    result = await service.submit_capture("user-1", "https://twitter.com/alice/status/1?s=20", notes=" read later ")

    assert result.existing is False
    assert result.status == "pending"
    assert result.source_type == "twitter"

    record = await capture_store.get_by_id(result.id)
    assert record.normalized_url == "https://x.com/alice/status/1"
    assert record.source_url == "https://twitter.com/alice/status/1?s=20"
    assert record.platform_data == {"user_notes": "read later"}

    assert len(queue.captures) == 1
    message = queue.captures[0]
    assert message.capture_id == result.id
    assert message.url == "https://x.com/alice/status/1"
    assert message.notes == "read later"
    assert message.trace_id == result.trace_id


async def test_same_normalized_url_returns_existing_record(service, capture_store, queue):
    first = await service.submit_capture("user-1", "https://x.com/a/status/1")
    second = await service.submit_capture("user-1", "https://twitter.com/a/status/1/?t=xyz")

    assert second.existing is True
    assert second.id == first.id
    assert len(capture_store.rows) == 1
    assert len(queue.captures) == 1


async def test_tweet_handle_case_does_not_create_second_record(service, capture_store, queue):
    first = await service.submit_capture("user-1", "https://x.com/Alice/status/1")
    second = await service.submit_capture("user-1", "https://x.com/alice/status/1")

    assert second.existing is True
    assert second.id == first.id
    assert len(queue.captures) == 1


async def test_same_url_for_different_users_creates_separate_records(service, capture_store):
    first = await service.submit_capture("user-1", "https://example.com/a")
    second = await service.submit_capture("user-2", "https://example.com/a")

    assert first.id != second.id
    assert second.existing is False
    assert len(capture_store.rows) == 2


async def test_concurrent_submissions_create_one_record(service, capture_store, queue):
    results = await asyncio.gather(*(
        service.submit_capture("user-1", "https://example.com/race") for _ in range(5)
    ))

    assert len({r.id for r in results}) == 1
    assert sum(1 for r in results if not r.existing) == 1
    assert len(capture_store.rows) == 1
    assert len(queue.captures) == 1


async def test_invalid_url_is_rejected_without_side_effects(service, capture_store, queue):
    with pytest.raises(InvalidCaptureError):
        await service.submit_capture("user-1", "chrome://extensions")

    assert capture_store.rows == {}
    assert queue.captures == []


async def test_enqueue_failure_keeps_pending_record(capture_store, note_store):
    service = IngestionService(capture_store, note_store, FakeQueue(fail=True))

    result = await service.submit_capture("user-1", "https://example.com/a")

    assert result.existing is False
    record = await capture_store.get_by_id(result.id)
    assert record.status == "pending"


async def test_idempotency_key_becomes_trace_id(service, queue):
    result = await service.submit_capture("user-1", "https://example.com/a", idempotency_key="client-key-1")

    assert result.trace_id == "client-key-1"
    assert queue.captures[0].trace_id == "client-key-1"


async def test_get_capture_is_scoped_to_user(service):
    result = await service.submit_capture("user-1", "https://example.com/a")

    assert (await service.get_capture("user-1", result.id)).id == result.id
    assert await service.get_capture("user-2", result.id) is None


# ========== 笔记 ==========

async def test_identical_note_text_returns_same_note(service, note_store, queue):
    first = await service.submit_note("user-1", "Remember to read the paper")
    second = await service.submit_note("user-1", "   Remember to read   the paper\n")

    assert first.existing is False
    assert second.existing is True
    assert second.id == first.id
    assert second.source_type == "note"
    assert len(note_store.rows) == 1
    assert len(queue.notes) == 1
    assert queue.notes[0].note_id == first.id


async def test_concurrent_note_submissions_create_one_note(service, note_store):
    results = await asyncio.gather(
        service.submit_note("user-1", "same text"),
        service.submit_note("user-1", " same  text "),
    )

    assert results[0].id == results[1].id
    assert len(note_store.rows) == 1


async def test_empty_note_is_rejected(service, note_store):
    with pytest.raises(InvalidCaptureError):
        await service.submit_note("user-1", " \n\t ")
    assert note_store.rows == {}


async def test_note_enqueue_failure_is_not_surfaced(capture_store, note_store):
    service = IngestionService(capture_store, note_store, FakeQueue(fail=True))

    result = await service.submit_note("user-1", "a thought")

    assert result.status == "pending"
    assert len(note_store.rows) == 1


async def test_invalid_cursor_is_reported_as_invalid_argument(service):
    with pytest.raises(InvalidCaptureError):
        await service.list_notes("user-1", cursor="bad")
