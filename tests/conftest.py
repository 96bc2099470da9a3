"""Pytest configuration and fixtures."""
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest
from unittest.mock import Mock

from relaychat.adapters.llm.base import ProviderAdapter
from relaychat.app.schemas import Message, ModelConfig, ProviderId, Role, StreamChunk
from relaychat.core.key_pool import KeyRotationManager


class FakeClock:
    """Manually advanced time source for key pool tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ScriptedAdapter(ProviderAdapter):
    """Adapter replaying a script of outcomes, one entry per open_stream call.

    Each entry is a list of chunk texts, an exception, or a
    ``(texts, exception)`` tuple for a stream that fails midway. The last
    entry repeats once the script runs out.
    """

    def __init__(self, provider: ProviderId, script: List[Any], keys: str = "k1,k2,k3", **kwargs):
        self.provider = provider
        super().__init__(
            KeyRotationManager(keys, provider=provider.value),
            client=Mock(spec=httpx.AsyncClient),
            **kwargs,
        )
        self.script = list(script)
        self.calls: List[Dict[str, Any]] = []

    def prepare_request(self, last_message, history, config):
        return {}

    async def open_stream(self, last_message, history, config, api_key):
        self.calls.append({"api_key": api_key, "config": config})
        step = self.script[min(len(self.calls), len(self.script)) - 1]

        texts, error = [], None
        if isinstance(step, Exception):
            error = step
        elif isinstance(step, tuple):
            texts, error = step
        else:
            texts = step

        for text in texts:
            yield StreamChunk(text=text)
        if error is not None:
            raise error


def sse_body(*events: Dict[str, Any], done: bool = False) -> str:
    """Encode events as an SSE body of ``data:`` lines."""
    body = "".join(f"data: {json.dumps(event)}\n\n" for event in events)
    if done:
        body += "data: [DONE]\n\n"
    return body


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def fake_clock():
    """Fake monotonic clock."""
    return FakeClock()


@pytest.fixture
def scripted_adapter():
    """Factory for scripted adapters."""
    return ScriptedAdapter


@pytest.fixture
def sse():
    """SSE body encoder."""
    return sse_body


@pytest.fixture
def make_client():
    """Factory for HTTP clients backed by a request handler."""
    return mock_client


@pytest.fixture
def conversation():
    """Prior exchange plus the current message as the last history entry."""
    current = Message(role=Role.USER, content="And in Rust?")
    history = [
        Message(role=Role.USER, content="How do I reverse a list in Python?"),
        Message(role=Role.MODEL, content="Use reversed() or slicing."),
        current,
    ]
    return current, history


@pytest.fixture
def model_config():
    """Default generation config for tests."""
    return ModelConfig(model="gemini-2.5-flash", temperature=0.7, top_p=0.95, top_k=40, max_tokens=8192)
