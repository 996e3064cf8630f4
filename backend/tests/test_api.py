"""
HTTP 接口测试（依赖覆盖为内存存储）
"""
import pytest
from fastapi.testclient import TestClient

from app.api.v1.deps import get_ingestion_service
from app.config import settings
from app.main import app
from app.services.ingestion import IngestionService

from conftest import FakeQueue, InMemoryCaptureStore, InMemoryNoteStore

HEADERS = {"X-User-Id": "user-1"}
PREFIX = settings.api_v1_prefix


@pytest.fixture
def service():
    return IngestionService(InMemoryCaptureStore(), InMemoryNoteStore(), FakeQueue())


@pytest.fixture
def client(service):
    app.dependency_overrides[get_ingestion_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_capture_submit_then_duplicate(client, service):
    first = client.post(f"{PREFIX}/capture", json={"url": "https://example.com/post?utm_source=x"}, headers=HEADERS)
    second = client.post(f"{PREFIX}/capture", json={"url": "https://www.example.com/post/"}, headers=HEADERS)

    assert first.status_code == 202
    assert first.json()["existing"] is False
    assert first.json()["sourceType"] == "web"
    assert second.status_code == 200
    assert second.json()["existing"] is True
    assert second.json()["id"] == first.json()["id"]
    assert len(service.queue.captures) == 1


def test_capture_idempotency_key_is_trace_id(client, service):
    response = client.post(
        f"{PREFIX}/capture",
        json={"url": "https://x.com/alice/status/1", "idempotencyKey": "req-42"},
        headers=HEADERS,
    )

    assert response.json()["traceId"] == "req-42"
    assert service.queue.captures[0].trace_id == "req-42"


def test_invalid_url_is_400(client):
    response = client.post(f"{PREFIX}/capture", json={"url": "ftp://example.com/file"}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_ARGUMENT"
    assert response.json()["request_id"]


def test_missing_user_identity_is_503(client, monkeypatch):
    monkeypatch.setattr(settings, "default_user_id", "")

    response = client.post(f"{PREFIX}/capture", json={"url": "https://example.com/a"})

    assert response.status_code == 503
    assert response.json()["code"] == "SERVICE_MISCONFIGURED"
    assert response.json()["missing"] == ["DEFAULT_USER_ID"]


def test_default_user_id_is_used_without_header(client, service, monkeypatch):
    monkeypatch.setattr(settings, "default_user_id", "solo-user")

    response = client.post(f"{PREFIX}/capture", json={"url": "https://example.com/a"})

    assert response.status_code == 202
    assert service.queue.captures[0].user_id == "solo-user"


def test_get_capture_is_user_scoped(client):
    created = client.post(f"{PREFIX}/capture", json={"url": "https://example.com/a"}, headers=HEADERS).json()

    own = client.get(f"{PREFIX}/capture/{created['id']}", headers=HEADERS)
    other = client.get(f"{PREFIX}/capture/{created['id']}", headers={"X-User-Id": "user-2"})

    assert own.status_code == 200
    assert own.json()["status"] == "pending"
    assert own.json()["sourceUrl"] == "https://example.com/a"
    assert own.json()["hasEmbedding"] is False
    assert other.status_code == 404


def test_notes_submit_list_and_get(client):
    first = client.post(f"{PREFIX}/notes", json={"text": "  buy   milk "}, headers=HEADERS)
    duplicate = client.post(f"{PREFIX}/notes", json={"text": "buy milk"}, headers=HEADERS)
    listing = client.get(f"{PREFIX}/notes", headers=HEADERS)
    single = client.get(f"{PREFIX}/notes/{first.json()['id']}", headers=HEADERS)

    assert first.status_code == 202
    assert duplicate.status_code == 200
    assert duplicate.json()["id"] == first.json()["id"]
    assert [n["id"] for n in listing.json()["notes"]] == [first.json()["id"]]
    assert listing.json()["nextCursor"] is None
    assert single.json()["rawText"] == "buy   milk"


def test_bad_note_cursor_is_400(client):
    response = client.get(f"{PREFIX}/notes", params={"cursor": "bad"}, headers=HEADERS)

    assert response.status_code == 400


def test_blank_note_is_400(client):
    response = client.post(f"{PREFIX}/notes", json={"text": "   "}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_ARGUMENT"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_prometheus_metrics(client):
    client.post(f"{PREFIX}/capture", json={"url": "https://example.com/m"}, headers=HEADERS)

    response = client.get(f"{PREFIX}/monitoring/metrics")

    assert response.status_code == 200
    assert "capture_submissions_total" in response.text
