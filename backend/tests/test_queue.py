"""
Celery 队列发布测试
"""
import pytest

from app.config import settings
from app.exceptions import QueuePublishError
from app.schemas.capture import CaptureMessage, NoteMessage
from app.services.queue import (
    CeleryQueue,
    DEAD_LETTER_TASK,
    PROCESS_CAPTURE_TASK,
    PROCESS_NOTE_TASK,
)
from app.tasks.capture_tasks import _backoff


class FakeCeleryApp:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send_task(self, name, args=None, queue=None, headers=None):
        if self.error:
            raise self.error
        self.sent.append({"name": name, "args": args, "queue": queue, "headers": headers})


async def test_capture_message_is_sent_with_routing_headers():
    celery_app = FakeCeleryApp()
    message = CaptureMessage(
        capture_id="cap-1",
        url="https://x.com/a/status/1",
        source_type="twitter",
        user_id="user-1",
        trace_id="trace-1",
        is_thread_parent=True,
        thread_depth=2,
    )

    await CeleryQueue(celery_app).publish_capture(message)

    sent = celery_app.sent[0]
    assert sent["name"] == PROCESS_CAPTURE_TASK
    assert sent["queue"] == settings.capture_queue_name
    assert sent["headers"] == {"sourceType": "twitter", "captureId": "cap-1"}
    assert sent["args"] == [{
        "captureId": "cap-1",
        "url": "https://x.com/a/status/1",
        "sourceType": "twitter",
        "userId": "user-1",
        "traceId": "trace-1",
        "isThreadParent": True,
        "threadDepth": 2,
    }]


async def test_note_message_goes_to_note_queue():
    celery_app = FakeCeleryApp()

    await CeleryQueue(celery_app).publish_note(NoteMessage(note_id="n-1", user_id="user-1", trace_id="t"))

    sent = celery_app.sent[0]
    assert sent["name"] == PROCESS_NOTE_TASK
    assert sent["queue"] == settings.note_queue_name
    assert sent["headers"] == {"sourceType": "note", "noteId": "n-1"}


async def test_dead_letter_envelope():
    celery_app = FakeCeleryApp()

    await CeleryQueue(celery_app).publish_dead_letter("capture", {"captureId": "cap-1"}, "boom", 5)

    sent = celery_app.sent[0]
    envelope = sent["args"][0]
    assert sent["name"] == DEAD_LETTER_TASK
    assert sent["queue"] == settings.dead_letter_queue_name
    assert envelope["kind"] == "capture"
    assert envelope["payload"] == {"captureId": "cap-1"}
    assert envelope["attempts"] == 5
    assert envelope["failedAt"].endswith("Z")


async def test_broker_failure_becomes_queue_publish_error():
    queue = CeleryQueue(FakeCeleryApp(error=ConnectionError("redis down")))

    with pytest.raises(QueuePublishError, match="redis down"):
        await queue.publish_note(NoteMessage(note_id="n-1", user_id="user-1", trace_id="t"))


def test_redelivery_backoff_grows_and_caps(monkeypatch):
    monkeypatch.setattr(settings, "redelivery_backoff_seconds", 10)
    monkeypatch.setattr(settings, "redelivery_backoff_max_seconds", 60)

    assert [_backoff(n) for n in range(4)] == [10, 20, 40, 60]
