"""Tests for the HTTP surface."""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from relaychat.app.main import create_app

ENV = {"GEMINI_API_KEY": "g1", "GROQ_API_KEY": "q1,q2"}


def parse_events(body: str):
    """Split an SSE body into (event, data) pairs."""
    events = []
    for block in body.strip().split("\n\n"):
        fields = dict(line.split(": ", 1) for line in block.splitlines() if ": " in line)
        events.append((fields["event"], json.loads(fields["data"])))
    return events


def chat_body(provider=None, model="gemini-2.5-flash"):
    config = {"model": model}
    if provider:
        config["provider"] = provider
    return {
        "message": {"role": "user", "content": "Hello"},
        "history": [{"role": "user", "content": "Hello"}],
        "config": config,
    }


def upstream(gemini_status=200):
    """Fake provider APIs: Gemini answers with ``gemini_status``, Groq always streams."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.host == "generativelanguage.googleapis.com":
            if gemini_status != 200:
                return httpx.Response(gemini_status, text="upstream failure")
            event = {"candidates": [{"content": {"parts": [{"text": "Hi from Gemini"}]}}]}
            return httpx.Response(200, text=f"data: {json.dumps(event)}\n\n")
        event = {"choices": [{"delta": {"content": "Hi from Groq"}}]}
        return httpx.Response(200, text=f"data: {json.dumps(event)}\n\ndata: [DONE]\n\n")

    return httpx.MockTransport(handler), calls


@pytest.fixture
def client_factory():
    def factory(environ=ENV, gemini_status=200):
        transport, calls = upstream(gemini_status)
        app = create_app(environ=environ, transport=transport, config_path=None)
        return TestClient(app), calls

    return factory


def test_health(client_factory):
    client, _ = client_factory()
    with client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_healthz_reports_key_pools(client_factory):
    client, _ = client_factory()
    with client:
        data = client.get("/healthz").json()

    assert data["status"] == "healthy"
    assert data["available_providers"] == ["gemini", "groq"]
    assert data["key_pools"]["groq"]["total_keys"] == 2
    assert data["key_pools"]["openrouter"]["configured"] is False


def test_healthz_degraded_without_keys(client_factory):
    client, _ = client_factory(environ={})
    with client:
        data = client.get("/healthz").json()

    assert data["status"] == "degraded"
    assert data["available_providers"] == []


def test_list_providers(client_factory):
    client, _ = client_factory()
    with client:
        data = client.get("/v1/providers").json()

    assert data["default_provider"] == "gemini"
    assert [p["id"] for p in data["providers"]] == ["gemini", "groq"]
    assert data["providers"][1]["default_model"] == "llama-3.3-70b-versatile"


def test_chat_stream_success(client_factory):
    client, calls = client_factory()
    with client:
        response = client.post("/v1/chat/stream", json=chat_body())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["x-request-id"].startswith("chat_")

    events = parse_events(response.text)
    assert events[0] == ("chunk", {"text": "Hi from Gemini", "provider": "gemini"})
    assert events[-1][0] == "done"
    assert events[-1][1]["provider"] == "gemini"
    assert events[-1][1]["model"] == "gemini-2.5-flash"

    # History's last entry is the current message and is sent once
    payload = json.loads(calls[0].content)
    assert len(payload["contents"]) == 1


def test_chat_stream_falls_back_to_groq(client_factory):
    client, calls = client_factory(gemini_status=500)
    with client:
        response = client.post("/v1/chat/stream", json=chat_body())

    events = parse_events(response.text)
    assert events[0] == ("chunk", {"text": "Hi from Groq", "provider": "groq"})
    assert events[-1] == (
        "done",
        {"request_id": response.headers["x-request-id"], "provider": "groq", "model": "llama-3.3-70b-versatile"},
    )
    assert [c.url.host for c in calls] == ["generativelanguage.googleapis.com", "api.groq.com"]


def test_chat_stream_all_providers_fail(client_factory):
    client, calls = client_factory(environ={"GEMINI_API_KEY": "g1"}, gemini_status=429)
    with client:
        response = client.post("/v1/chat/stream", json=chat_body())

    events = parse_events(response.text)
    assert [name for name, _ in events] == ["error"]
    assert events[0][1]["code"] == "ALL_PROVIDERS_FAILED"
    assert "gemini" in events[0][1]["details"]
    # One key, three attempts against it
    assert len(calls) == 3


def test_chat_stream_without_keys_is_503(client_factory):
    client, calls = client_factory(environ={})
    with client:
        response = client.post("/v1/chat/stream", json=chat_body())

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"
    assert calls == []


def test_chat_stream_rejects_unknown_provider(client_factory):
    client, _ = client_factory()
    with client:
        response = client.post("/v1/chat/stream", json=chat_body(provider="mistral"))

    assert response.status_code == 422


def test_chat_stream_rejects_empty_model(client_factory):
    client, _ = client_factory()
    with client:
        response = client.post("/v1/chat/stream", json=chat_body(model="  "))

    assert response.status_code == 422
