"""relaychat Core - key rotation, retry, and error primitives."""

from relaychat.core.errors import (
    AllProvidersFailedError,
    ConfigurationError,
    ErrorCode,
    ProviderError,
    RateLimitError,
    RelayChatError,
    RetriesExhaustedError,
    TransportError,
    UnknownProviderError,
    is_rate_limit_error,
)
from relaychat.core.key_pool import KeyRotationManager
from relaychat.core.retry import RetryMatrix, StreamRetryPolicy

__all__ = [
    "AllProvidersFailedError",
    "ConfigurationError",
    "ErrorCode",
    "KeyRotationManager",
    "ProviderError",
    "RateLimitError",
    "RelayChatError",
    "RetriesExhaustedError",
    "RetryMatrix",
    "StreamRetryPolicy",
    "TransportError",
    "UnknownProviderError",
    "is_rate_limit_error",
]
