"""Service layer for relaychat: provider fallback and response assembly."""
import asyncio
import time
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, List, Mapping, Optional, Tuple, Union
import logging

from relaychat.adapters.llm.base import ProviderAdapter
from relaychat.adapters.llm.factory import resolve_provider
from relaychat.app.dependencies import ProviderRegistry
from relaychat.app.schemas import GroundingMetadata, Message, ModelConfig, ProviderId, Role, StreamChunk
from relaychat.core.errors import (
    AllProvidersFailedError,
    ConfigurationError,
    ErrorCode,
    RelayChatError,
)
from relaychat.core.logging import structured_logger
from relaychat.metrics.prometheus import (
    all_providers_failed_total,
    chunks_total,
    errors_total,
    fallbacks_total,
    request_latency_ms,
    requests_total,
)

logger = logging.getLogger(__name__)


class FallbackState(str, Enum):
    """Lifecycle of one fallback run. SUCCEEDED and EXHAUSTED are terminal."""

    NOT_STARTED = "not_started"
    TRYING = "trying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass
class FallbackRun:
    """Tracks one request's progress through the provider cascade.

    Pass an instance to ``stream_message_with_fallback`` to observe which
    provider is being tried and which one served the response.
    """
    request_id: str = field(default_factory=lambda: f"chat_{uuid.uuid4().hex[:16]}")
    state: FallbackState = FallbackState.NOT_STARTED
    requested_provider: Optional[ProviderId] = None
    current_index: int = -1
    tried: List[ProviderId] = field(default_factory=list)
    errors: Dict[str, Exception] = field(default_factory=dict)
    provider: Optional[ProviderId] = None  # serving provider once SUCCEEDED
    model: Optional[str] = None
    chunks: int = 0

    def start_attempt(self, provider: ProviderId, model: str):
        self.state = FallbackState.TRYING
        self.current_index += 1
        self.tried.append(provider)
        self.provider = provider
        self.model = model

    def record_failure(self, provider: ProviderId, error: Exception):
        self.errors[provider.value] = error
        self.provider = None

    def succeed(self):
        self.state = FallbackState.SUCCEEDED

    def exhaust(self):
        self.state = FallbackState.EXHAUSTED
        self.provider = None


class ProviderFallbackOrchestrator:
    """Streams a reply from the preferred provider, cascading to others on failure.

    Each provider runs through its own retry policy. A provider that fails
    (after its retries) is logged and skipped; the next available provider is
    tried with its own default model. Chunks are tagged with the provider
    that produced them.

    Chunks forwarded by a provider that later fails are not retracted, so a
    caller may see a partial reply followed by a complete one from another
    provider. Only a stream that ends without error is a complete response.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        adapters: Mapping[ProviderId, ProviderAdapter],
        default_provider: ProviderId = ProviderId.GEMINI,
    ):
        """
        Args:
            registry: Provider availability registry
            adapters: Adapter per provider
            default_provider: Primary provider when a request names none
        """
        self.registry = registry
        self.adapters = dict(adapters)
        self.default_provider = default_provider

    def get_available_providers(self) -> List[ProviderId]:
        """Usable providers in preference order."""
        return [p for p in self.registry.get_available_providers() if p in self.adapters]

    def is_provider_available(self, provider: Union[str, ProviderId]) -> bool:
        return self.registry.is_provider_available(provider)

    def plan(self, config: ModelConfig) -> List[Tuple[ProviderId, ModelConfig]]:
        """Ordered (provider, config) candidates for a request.

        The primary keeps the requested model; fallbacks use their own
        default model since model identifiers are not portable.

        Raises:
            UnknownProviderError: The requested provider is not registered
            ConfigurationError: No provider has configured keys
        """
        primary = resolve_provider(config.provider or self.default_provider)
        available = self.get_available_providers()
        if not available:
            raise ConfigurationError(
                "No AI provider is configured. Set GEMINI_API_KEY, GROQ_API_KEY or OPENROUTER_API_KEY."
            )

        candidates: List[Tuple[ProviderId, ModelConfig]] = []
        if primary in available:
            candidates.append((primary, config.model_copy(update={"provider": primary})))
        else:
            logger.warning(f"Primary provider {primary.value} has no API key, using fallbacks")

        for provider in available:
            if provider == primary:
                continue
            candidates.append((
                provider,
                config.model_copy(update={"provider": provider, "model": self.registry.default_model(provider)}),
            ))
        return candidates

    async def stream_message_with_fallback(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
        run: Optional[FallbackRun] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a reply, falling back across providers.

        Yields:
            StreamChunk objects with ``provider`` set to the serving provider

        Raises:
            ConfigurationError: No provider configured, or unknown provider requested
            AllProvidersFailedError: Every candidate failed
        """
        run = run or FallbackRun()
        run.requested_provider = config.provider or self.default_provider
        start_time = time.time()

        candidates = self.plan(config)

        try:
            for provider, provider_config in candidates:
                if run.tried:
                    logger.info(f"Falling back to provider: {provider.value}")
                    fallbacks_total.labels(from_provider=run.tried[-1].value, to_provider=provider.value).inc()
                run.start_attempt(provider, provider_config.model)

                adapter = self.adapters[provider]
                try:
                    async with aclosing(adapter.stream_message(last_message, history, provider_config)) as stream:
                        async for chunk in stream:
                            run.chunks += 1
                            chunks_total.labels(provider=provider.value).inc()
                            yield chunk.model_copy(update={"provider": provider})
                except Exception as e:
                    run.record_failure(provider, e)
                    code = e.code.value if isinstance(e, RelayChatError) else ErrorCode.INTERNAL_ERROR.value
                    errors_total.labels(provider=provider.value, error_code=code).inc()
                    logger.warning(f"Provider {provider.value} failed, trying next provider: {e}")
                    continue

                run.succeed()
                self._record(run, start_time, outcome="success")
                return
        except (GeneratorExit, asyncio.CancelledError):
            self._record(run, start_time, outcome="cancelled")
            raise

        run.exhaust()
        all_providers_failed_total.inc()
        self._record(run, start_time, outcome="error", error_code=ErrorCode.ALL_PROVIDERS_FAILED.value)
        raise AllProvidersFailedError(
            "All AI providers failed. Please check your API keys.",
            errors=dict(run.errors),
        )

    def _record(self, run: FallbackRun, start_time: float, outcome: str, error_code: Optional[str] = None):
        latency_ms = int((time.time() - start_time) * 1000)
        provider = run.provider.value if run.provider else None
        requested = run.requested_provider.value if run.requested_provider else None

        requests_total.labels(provider=provider or "none", outcome=outcome).inc()
        request_latency_ms.labels(provider=provider or "none").observe(latency_ms)

        structured_logger.log_stream(
            request_id=run.request_id,
            requested_provider=requested,
            provider=provider,
            model=run.model if provider else None,
            outcome=outcome,
            error_code=error_code,
            tried=[p.value for p in run.tried],
            chunks=run.chunks,
            latency_ms=latency_ms,
            level="ERROR" if outcome == "error" else "INFO",
        )


class ResponseAccumulator:
    """Assembles streamed chunks into one model reply.

    Keeps the latest non-empty grounding seen. A reply is complete only when
    its stream ended without error; a failed reply keeps its partial text
    and is flagged as an error.
    """

    def __init__(self):
        self.text = ""
        self.grounding: Optional[GroundingMetadata] = None
        self.provider: Optional[ProviderId] = None
        self.complete = False
        self.error: Optional[Exception] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def add(self, chunk: StreamChunk):
        self.text += chunk.text
        if chunk.grounding is not None and not chunk.grounding.is_empty():
            self.grounding = chunk.grounding
        if chunk.provider is not None:
            self.provider = chunk.provider

    def finish(self):
        self.complete = True

    def fail(self, error: Exception):
        self.error = error
        self.complete = False

    async def consume(self, stream: AsyncIterator[StreamChunk]) -> "ResponseAccumulator":
        """Drain ``stream`` into this accumulator.

        Errors are recorded with ``fail`` and re-raised.
        """
        try:
            async for chunk in stream:
                self.add(chunk)
        except Exception as e:
            self.fail(e)
            raise
        self.finish()
        return self

    def to_message(self, id: Optional[str] = None, timestamp: Optional[int] = None) -> Message:
        """Build the model turn for the chat history."""
        return Message(
            role=Role.MODEL,
            content=self.text,
            id=id,
            timestamp=timestamp,
            is_error=not self.complete,
            grounding_metadata=self.grounding,
        )
