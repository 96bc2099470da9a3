"""Tests for the credential-rotating retry policy."""
import pytest
from unittest.mock import AsyncMock, patch

from relaychat.app.schemas import ProviderId
from relaychat.core.errors import (
    ConfigurationError,
    ProviderError,
    RateLimitError,
    RetriesExhaustedError,
)
from relaychat.core.retry import RetryDecision, RetryMatrix, RetryState, StreamRetryPolicy


async def collect(stream):
    return [chunk.text async for chunk in stream]


def test_retry_matrix_no_backoff():
    matrix = RetryMatrix()
    assert matrix.get_delay(1) == 0.0
    assert matrix.get_delay(5) == 0.0


def test_retry_matrix_exponential_is_capped():
    matrix = RetryMatrix(backoff="exp", base_s=1.0, max_s=5.0)
    assert [matrix.get_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_retry_matrix_linear():
    matrix = RetryMatrix(backoff="linear", base_s=0.5, max_s=10.0)
    assert matrix.get_delay(3) == 1.5


def test_retry_matrix_jitter_within_bounds():
    matrix = RetryMatrix(backoff="exp-jitter", base_s=1.0, max_s=10.0)
    for _ in range(20):
        delay = matrix.get_delay(2)
        assert 2.0 <= delay <= 2.6


def test_retry_state_decisions():
    state = RetryState(max_retries=3)

    assert state.decide(ProviderError("bad request")) is RetryDecision.PROPAGATE
    assert state.decide(RateLimitError("429")) is RetryDecision.ROTATE

    state.advance()
    state.advance()
    assert state.attempts == 3
    assert state.decide(RateLimitError("429")) is RetryDecision.EXHAUSTED


def test_policy_rejects_zero_retries():
    with pytest.raises(ValueError):
        StreamRetryPolicy(max_retries=0)


@pytest.mark.asyncio
async def test_success_on_first_attempt(scripted_adapter, conversation, model_config):
    current, history = conversation
    adapter = scripted_adapter(ProviderId.GROQ, [["Hel", "lo"]])

    assert await collect(adapter.stream_message(current, history, model_config)) == ["Hel", "lo"]
    assert len(adapter.calls) == 1
    assert adapter.key_manager.get_available_key_count() == 3


@pytest.mark.asyncio
async def test_rate_limit_rotates_to_next_key(scripted_adapter, conversation, model_config):
    current, history = conversation
    adapter = scripted_adapter(
        ProviderId.GEMINI,
        [RateLimitError("gemini API error 429: slow down", status_code=429), ["ok"]],
    )

    assert await collect(adapter.stream_message(current, history, model_config)) == ["ok"]
    assert [call["api_key"] for call in adapter.calls] == ["k1", "k2"]
    assert adapter.key_manager.key_status[0].failure_count == 1
    assert adapter.key_manager.get_available_key_count() == 2


@pytest.mark.asyncio
async def test_always_rate_limited_makes_exactly_three_attempts(scripted_adapter, conversation, model_config):
    current, history = conversation
    adapter = scripted_adapter(ProviderId.GEMINI, [Exception("RESOURCE_EXHAUSTED: quota exceeded")])

    with pytest.raises(RetriesExhaustedError) as exc_info:
        await collect(adapter.stream_message(current, history, model_config))

    assert len(adapter.calls) == 3
    assert [call["api_key"] for call in adapter.calls] == ["k1", "k2", "k3"]
    assert exc_info.value.attempts == 3
    assert exc_info.value.provider == "gemini"
    assert "RESOURCE_EXHAUSTED" in str(exc_info.value.__cause__)
    # Keys rotated away from are cooling down; the last one is left untouched
    assert adapter.key_manager.get_available_key_count() == 1
    assert adapter.key_manager.key_status[2].failure_count == 0


@pytest.mark.asyncio
async def test_non_rate_limit_error_is_not_retried(scripted_adapter, conversation, model_config):
    current, history = conversation
    error = ProviderError("groq API error 400: invalid model", status_code=400)
    adapter = scripted_adapter(ProviderId.GROQ, [error, ["never"]])

    with pytest.raises(ProviderError) as exc_info:
        await collect(adapter.stream_message(current, history, model_config))

    assert exc_info.value is error
    assert len(adapter.calls) == 1
    assert adapter.key_manager.get_available_key_count() == 3


@pytest.mark.asyncio
async def test_configuration_error_is_not_retried(scripted_adapter, conversation, model_config):
    current, history = conversation
    adapter = scripted_adapter(ProviderId.OPENROUTER, [ConfigurationError("No API key configured for openrouter")])

    with pytest.raises(ConfigurationError):
        await collect(adapter.stream_message(current, history, model_config))

    assert len(adapter.calls) == 1


@pytest.mark.asyncio
async def test_partial_chunks_are_not_retracted(scripted_adapter, conversation, model_config):
    """Chunks from a rate-limited attempt stay forwarded; the retry streams anew."""
    current, history = conversation
    adapter = scripted_adapter(ProviderId.GEMINI, [(["par"], RateLimitError("429")), ["full"]])

    assert await collect(adapter.stream_message(current, history, model_config)) == ["par", "full"]


@pytest.mark.asyncio
async def test_custom_max_retries(scripted_adapter, conversation, model_config):
    current, history = conversation
    adapter = scripted_adapter(
        ProviderId.GROQ,
        [RateLimitError("429")],
        keys="k1,k2,k3,k4,k5",
        retry_policy=StreamRetryPolicy(max_retries=5),
    )

    with pytest.raises(RetriesExhaustedError):
        await collect(adapter.stream_message(current, history, model_config))

    assert len(adapter.calls) == 5


@pytest.mark.asyncio
async def test_backoff_sleeps_between_rotations(scripted_adapter, conversation, model_config):
    current, history = conversation
    adapter = scripted_adapter(
        ProviderId.GROQ,
        [RateLimitError("429"), RateLimitError("429"), ["ok"]],
        retry_policy=StreamRetryPolicy(matrix=RetryMatrix(backoff="linear", base_s=0.5)),
    )

    with patch("relaychat.core.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        assert await collect(adapter.stream_message(current, history, model_config)) == ["ok"]

    assert [c.args[0] for c in mock_sleep.await_args_list] == [0.5, 1.0]
