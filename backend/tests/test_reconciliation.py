"""
pending 记录对账测试
"""
from datetime import timedelta

from app.services.reconciliation_service import ReconciliationService
from app.utils.timezone import now_utc

from conftest import FakeQueue

USER = "user-1"


def age(store, record_id, minutes):
    store.rows[record_id]["created_at"] = now_utc() - timedelta(minutes=minutes)


async def test_stale_pending_records_are_republished(capture_store, note_store, queue):
    stale = await capture_store.create(
        USER, "https://x.com/a/status/50", "https://x.com/a/status/50", "twitter",
        platform_data={"tweetId": "50", "threadDepth": 2, "user_notes": "from a thread"},
    )
    fresh = await capture_store.create(USER, "https://example.com/new", "https://example.com/new", "web")
    done = await capture_store.create(USER, "https://example.com/done", "https://example.com/done", "web")
    await capture_store.update_status(done.id, "complete")
    note = await note_store.create(USER, "buy milk", "hash-milk")
    for record_id in (stale.id, done.id):
        age(capture_store, record_id, 60)
    age(note_store, note.id, 60)

    stats = await ReconciliationService(capture_store, note_store, queue).requeue_stale_pending(older_than_minutes=15)

    assert stats == {"captures": 1, "notes": 1, "failed": 0}
    message = queue.captures[0]
    assert message.capture_id == stale.id
    assert message.url == "https://x.com/a/status/50"
    assert message.notes == "from a thread"
    assert message.is_thread_parent is True
    assert message.thread_depth == 2
    assert message.trace_id.startswith("reconcile-")
    assert fresh.id not in [m.capture_id for m in queue.captures]
    assert queue.notes[0].note_id == note.id


async def test_ordinary_capture_is_not_marked_thread_parent(capture_store, note_store, queue):
    capture = await capture_store.create(USER, "https://example.com/a", "https://example.com/a", "web")
    age(capture_store, capture.id, 30)

    await ReconciliationService(capture_store, note_store, queue).requeue_stale_pending(older_than_minutes=15)

    assert queue.captures[0].is_thread_parent is False
    assert queue.captures[0].thread_depth == 0


async def test_publish_failures_are_counted(capture_store, note_store):
    capture = await capture_store.create(USER, "https://example.com/a", "https://example.com/a", "web")
    note = await note_store.create(USER, "text", "hash-text")
    age(capture_store, capture.id, 30)
    age(note_store, note.id, 30)

    stats = await ReconciliationService(capture_store, note_store, FakeQueue(fail=True)).requeue_stale_pending(
        older_than_minutes=15
    )

    assert stats == {"captures": 0, "notes": 0, "failed": 2}


async def test_limit_caps_each_record_kind(capture_store, note_store, queue):
    for i in range(3):
        capture = await capture_store.create(USER, f"https://example.com/{i}", f"https://example.com/{i}", "web")
        age(capture_store, capture.id, 30 + i)

    stats = await ReconciliationService(capture_store, note_store, queue).requeue_stale_pending(
        older_than_minutes=15, limit=2
    )

    assert stats["captures"] == 2
