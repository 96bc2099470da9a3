"""Error codes and exception types for relaychat."""
from enum import Enum
from typing import Dict, Optional, Union


class ErrorCode(str, Enum):
    """Normalized error codes for relaychat.

    Used in exceptions, SSE error events, logs, and metrics.
    """
    # Configuration errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"

    # Upstream errors (from provider APIs)
    RATE_LIMITED = "RATE_LIMITED"  # 429 / quota / resource exhaustion
    PROVIDER_ERROR = "PROVIDER_ERROR"  # Any other provider-reported error
    TRANSPORT_ERROR = "TRANSPORT_ERROR"  # Network/timeout
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Substrings that mark an upstream error as a rate-limit signal
RATE_LIMIT_MARKERS = ("429", "quota", "rate limit", "resource_exhausted")


class RelayChatError(Exception):
    """Base class for all errors raised by relaychat."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Optional[Union[str, int]]]:
        """Serialize for SSE error events and JSON responses."""
        return {
            "code": self.code.value,
            "message": self.message,
            "provider": self.provider,
            "upstream_status": self.status_code,
        }


class ConfigurationError(RelayChatError):
    """No usable credential or invalid configuration. Never retried."""

    code = ErrorCode.CONFIGURATION_ERROR


class UnknownProviderError(ConfigurationError):
    """Requested provider identifier is not registered."""

    code = ErrorCode.UNKNOWN_PROVIDER


class ProviderError(RelayChatError):
    """Provider-reported failure (malformed request, auth, server fault)."""

    code = ErrorCode.PROVIDER_ERROR


class RateLimitError(ProviderError):
    """Upstream signalled quota, 429 or resource exhaustion."""

    code = ErrorCode.RATE_LIMITED


class TransportError(ProviderError):
    """Network or timeout failure while talking to the provider."""

    code = ErrorCode.TRANSPORT_ERROR


class RetriesExhaustedError(ProviderError):
    """Every credential-rotating attempt for one provider was rate limited."""

    code = ErrorCode.RETRIES_EXHAUSTED

    def __init__(self, message: str, provider: Optional[str] = None, attempts: int = 0):
        super().__init__(message, provider=provider, status_code=429)
        self.attempts = attempts


class AllProvidersFailedError(RelayChatError):
    """The primary provider and every fallback failed."""

    code = ErrorCode.ALL_PROVIDERS_FAILED

    def __init__(self, message: str, errors: Optional[Dict[str, Exception]] = None):
        super().__init__(message)
        self.errors = errors or {}

    def to_dict(self) -> Dict[str, Optional[Union[str, int]]]:
        result = super().to_dict()
        result["details"] = {name: str(err) for name, err in self.errors.items()}
        return result


def is_rate_limit_error(
    error: Union[BaseException, str, None],
    status_code: Optional[int] = None,
) -> bool:
    """Check whether an error (or error message) is a rate-limit signal.

    Args:
        error: Exception or raw error message
        status_code: Upstream HTTP status code, if known

    Returns:
        True if the error matches the 429/quota/resource-exhaustion signature
    """
    if isinstance(error, RateLimitError):
        return True
    if status_code is None and isinstance(error, RelayChatError):
        status_code = error.status_code
    if status_code == 429:
        return True
    if error is None:
        return False

    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def classify_http_error(provider: str, status_code: int, body: str) -> ProviderError:
    """Build a typed error for a non-2xx upstream response.

    Args:
        provider: Provider identifier
        status_code: HTTP status code
        body: Decoded response body (may be empty)

    Returns:
        RateLimitError for rate-limit signatures, ProviderError otherwise
    """
    detail = body.strip() or "no response body"
    message = f"{provider} API error {status_code}: {detail}"
    if is_rate_limit_error(message, status_code):
        return RateLimitError(message, provider=provider, status_code=status_code)
    return ProviderError(message, provider=provider, status_code=status_code)
