import pytest
from fastapi.testclient import TestClient

from chatcal.app import create_app


@pytest.fixture
def client(orchestrator):
    """HTTP client around an app wired to the scripted orchestrator."""
    return TestClient(create_app(orchestrator=orchestrator))


def test_webhook_returns_message_result(client, nlu):
    nlu.texts.append("Hi! How can I help with your calendar?")

    resp = client.post("/api/webhook", json={"text": "hello", "userId": "u1"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["intent"] == "general_chat"
    assert body["response"] == "Hi! How can I help with your calendar?"


@pytest.mark.parametrize("payload", [
    {"text": "", "userId": "u1"},
    {"text": "hello"},
    {"text": "x" * 1001, "userId": "u1"},
    {"text": "hello", "userId": "u" * 101},
])
def test_webhook_rejects_invalid_payloads(client, payload):
    assert client.post("/api/webhook", json=payload).status_code == 422


def test_webhook_maps_unhandled_errors_to_502(client, orchestrator, mocker):
    mocker.patch.object(orchestrator, "process_message", side_effect=RuntimeError("boom"))

    resp = client.post("/api/webhook", json={"text": "hello", "userId": "u1"})

    assert resp.status_code == 502


def test_session_endpoint(client):
    assert client.get("/api/sessions/u1").status_code == 404

    client.post("/api/webhook", json={"text": "hello", "userId": "u1"})
    resp = client.get("/api/sessions/u1")

    assert resp.status_code == 200
    body = resp.json()
    assert body["user_id"] == "u1"
    assert [turn["role"] for turn in body["turns"]] == ["user", "assistant"]
    assert body["pending_intent"] is None


def test_health_reports_session_count(client):
    assert client.get("/api/health").json() == {"status": "ok", "sessions": 0}
    client.post("/api/webhook", json={"text": "hello", "userId": "u1"})
    assert client.get("/api/health").json()["sessions"] == 1
