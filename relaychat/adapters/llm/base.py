"""Base provider adapter interface."""
import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from relaychat.app.schemas import Message, ModelConfig, ProviderId, StreamChunk
from relaychat.core.errors import (
    ConfigurationError,
    ProviderError,
    RateLimitError,
    TransportError,
    classify_http_error,
    is_rate_limit_error,
)
from relaychat.core.key_pool import PLACEHOLDER_KEY, KeyRotationManager
from relaychat.core.retry import StreamRetryPolicy


class ProviderAdapter(ABC):
    """Base class for streaming chat adapters, one instance per provider.

    Subclasses build the provider's wire payload and turn its stream into
    ``StreamChunk`` objects. A single ``open_stream`` call is one network
    attempt with one key; retry and key rotation live in ``StreamRetryPolicy``.
    """

    provider: ProviderId
    base_url: str = ""
    default_system_instruction: str = ""
    default_max_tokens: Optional[int] = None

    supports_search: bool = False
    supports_thinking: bool = False
    supports_top_k: bool = False
    supports_attachments: bool = True

    def __init__(
        self,
        key_manager: KeyRotationManager,
        client: httpx.AsyncClient,
        retry_policy: Optional[StreamRetryPolicy] = None,
        base_url: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ):
        """
        Args:
            key_manager: Key pool for this provider (shared process-wide)
            client: Shared HTTP client
            retry_policy: Retry policy (defaults to 3 attempts, no backoff)
            base_url: Override for the provider API base URL
            max_tokens: Output ceiling when the request sets none
        """
        self.key_manager = key_manager
        self.client = client
        self.retry_policy = retry_policy or StreamRetryPolicy()
        if base_url:
            self.base_url = base_url
        if max_tokens is not None:
            self.default_max_tokens = max_tokens

    @staticmethod
    def build_transcript(history: List[Message]) -> List[Message]:
        """Prior turns to submit: the last history entry is the current message."""
        return list(history[:-1])

    def system_instruction(self, config: ModelConfig) -> str:
        return config.system_instruction or self.default_system_instruction

    def max_tokens(self, config: ModelConfig) -> Optional[int]:
        return config.max_tokens or self.default_max_tokens

    @abstractmethod
    def prepare_request(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
    ) -> Dict[str, Any]:
        """Prepare provider-specific request payload."""
        pass

    @abstractmethod
    def open_stream(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
        api_key: str,
    ) -> AsyncIterator[StreamChunk]:
        """Stream one attempt with the given key.

        Must yield normalized chunks in arrival order and raise typed
        ``RelayChatError`` subclasses on failure.
        """
        pass

    def stream_message(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a reply with key rotation on rate limits."""
        return self.retry_policy.stream(self, last_message, history, config)

    def _check_key(self, api_key: str):
        if not api_key or api_key == PLACEHOLDER_KEY:
            raise ConfigurationError(
                f"No API key configured for {self.provider.value}",
                provider=self.provider.value,
            )

    async def _iter_sse_data(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> AsyncIterator[Dict[str, Any]]:
        """POST ``payload`` and yield decoded JSON objects from ``data:`` lines.

        The response is closed when the caller stops iterating.
        """
        provider = self.provider.value
        try:
            async with self.client.stream("POST", url, json=payload, headers=headers) as response:
                if response.status_code >= 400:
                    error_body = await response.aread()
                    raise classify_http_error(
                        provider, response.status_code, error_body.decode(errors="replace")
                    )

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue

                    data_str = line[5:].strip()
                    if not data_str:
                        continue
                    if data_str == "[DONE]":
                        return

                    try:
                        chunk_data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(chunk_data, dict):
                        yield chunk_data
        except httpx.HTTPError as e:
            raise TransportError(
                f"{provider} transport error: {str(e) or type(e).__name__}", provider=provider
            ) from e

    def _stream_error(self, error: Any) -> ProviderError:
        """Build a typed error from an error object sent inside the stream."""
        provider = self.provider.value
        status_code = None
        if isinstance(error, dict):
            message = str(error.get("message") or error)
            code = error.get("code")
            if isinstance(code, int):
                status_code = code
            status = error.get("status")
            if status:
                message = f"{message} ({status})"
        else:
            message = str(error)

        text = f"{provider} stream error: {message}"
        if is_rate_limit_error(text, status_code):
            return RateLimitError(text, provider=provider, status_code=status_code)
        return ProviderError(text, provider=provider, status_code=status_code)
