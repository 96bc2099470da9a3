"""Tests for error classification."""
import pytest

from relaychat.core.errors import (
    AllProvidersFailedError,
    ConfigurationError,
    ErrorCode,
    ProviderError,
    RateLimitError,
    RetriesExhaustedError,
    UnknownProviderError,
    classify_http_error,
    is_rate_limit_error,
)


@pytest.mark.parametrize(
    "message",
    [
        "Error 429: Too Many Requests",
        "You exceeded your current QUOTA",
        "Rate limit reached for model",
        "RESOURCE_EXHAUSTED",
    ],
)
def test_rate_limit_markers(message):
    assert is_rate_limit_error(Exception(message))
    assert is_rate_limit_error(message)


def test_non_rate_limit_messages():
    assert not is_rate_limit_error(Exception("Invalid API key"))
    assert not is_rate_limit_error(ProviderError("gemini API error 500: boom", status_code=500))
    assert not is_rate_limit_error(None)


def test_rate_limit_by_status_or_type():
    assert is_rate_limit_error("slow down", status_code=429)
    assert is_rate_limit_error(ProviderError("slow down", status_code=429))
    assert is_rate_limit_error(RateLimitError("anything"))


def test_classify_http_error():
    limited = classify_http_error("groq", 429, '{"error": "too many"}')
    assert isinstance(limited, RateLimitError)
    assert limited.status_code == 429
    assert limited.provider == "groq"

    quota = classify_http_error("gemini", 403, "Quota exceeded for project")
    assert isinstance(quota, RateLimitError)

    server = classify_http_error("openrouter", 500, "")
    assert type(server) is ProviderError
    assert str(server) == "openrouter API error 500: no response body"


def test_error_codes():
    assert ConfigurationError("x").code == ErrorCode.CONFIGURATION_ERROR
    assert UnknownProviderError("x").code == ErrorCode.UNKNOWN_PROVIDER
    assert isinstance(UnknownProviderError("x"), ConfigurationError)
    assert RetriesExhaustedError("x", provider="groq", attempts=3).code == ErrorCode.RETRIES_EXHAUSTED


def test_to_dict():
    error = RateLimitError("gemini API error 429: slow", provider="gemini", status_code=429)

    assert error.to_dict() == {
        "code": "RATE_LIMITED",
        "message": "gemini API error 429: slow",
        "provider": "gemini",
        "upstream_status": 429,
    }


def test_all_providers_failed_details():
    error = AllProvidersFailedError(
        "All AI providers failed. Please check your API keys.",
        errors={"gemini": ProviderError("boom"), "groq": ConfigurationError("no key")},
    )

    data = error.to_dict()
    assert data["code"] == "ALL_PROVIDERS_FAILED"
    assert data["details"] == {"gemini": "boom", "groq": "no key"}
