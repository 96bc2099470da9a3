"""Credential-rotating retry policy for streaming adapter calls."""
import asyncio
import random
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator, List, Optional
import logging

from relaychat.core.errors import RetriesExhaustedError, is_rate_limit_error
from relaychat.metrics.prometheus import (
    key_rotations_total,
    provider_attempts_total,
    retries_exhausted_total,
)

if TYPE_CHECKING:
    from relaychat.adapters.llm.base import ProviderAdapter
    from relaychat.app.schemas import Message, ModelConfig, StreamChunk

logger = logging.getLogger(__name__)

# Adapter invocations per provider for one request
MAX_RETRIES = 3


class RetryMatrix:
    """Backoff policy between credential rotations."""

    def __init__(
        self,
        backoff: str = "none",
        base_s: float = 1.0,
        max_s: float = 10.0,
    ):
        """
        Args:
            backoff: Backoff strategy ("none", "exp-jitter", "exp", "linear")
            base_s: Base delay in seconds
            max_s: Maximum delay in seconds
        """
        self.backoff = backoff
        self.base_s = base_s
        self.max_s = max_s

    def get_delay(self, attempt: int) -> float:
        """Calculate delay before retry attempt.

        Args:
            attempt: Retry attempt number (1-based)

        Returns:
            Delay in seconds
        """
        if self.backoff == "exp-jitter":
            delay = self.base_s * (2 ** (attempt - 1))
            jitter = random.uniform(0, delay * 0.3)
            delay = min(delay + jitter, self.max_s)
        elif self.backoff == "exp":
            delay = min(self.base_s * (2 ** (attempt - 1)), self.max_s)
        elif self.backoff == "linear":
            delay = min(self.base_s * attempt, self.max_s)
        else:
            delay = 0.0

        return delay


class RetryDecision(str, Enum):
    """What to do after a failed attempt."""

    ROTATE = "rotate"  # mark key failed, acquire a fresh one, re-issue the request
    PROPAGATE = "propagate"  # not a rate limit: surface the error unchanged
    EXHAUSTED = "exhausted"  # rate limited on the last allowed attempt, key left as is


@dataclass
class RetryState:
    """Retry bookkeeping for one logical request against one provider."""

    max_retries: int = MAX_RETRIES
    retry_count: int = 0

    @property
    def attempts(self) -> int:
        """Adapter invocations made so far, counting the current one."""
        return self.retry_count + 1

    def can_attempt(self) -> bool:
        return self.retry_count < self.max_retries

    def decide(self, error: BaseException) -> RetryDecision:
        if not is_rate_limit_error(error):
            return RetryDecision.PROPAGATE
        if self.retry_count < self.max_retries - 1:
            return RetryDecision.ROTATE
        return RetryDecision.EXHAUSTED

    def advance(self):
        self.retry_count += 1


class StreamRetryPolicy:
    """Bounded, credential-rotating retry around one adapter.

    Chunks are forwarded as soon as the adapter yields them. When an attempt
    fails with a rate-limit error after some chunks were already forwarded,
    those chunks are not retracted: the next attempt starts a second,
    independent stream. Callers should commit a response only once a stream
    completes without error.

    Errors other than rate limits are propagated after a single invocation.
    """

    def __init__(self, max_retries: int = MAX_RETRIES, matrix: Optional[RetryMatrix] = None):
        """
        Args:
            max_retries: Maximum adapter invocations per request
            matrix: Optional backoff between rotations (default: none)
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.matrix = matrix or RetryMatrix()

    async def stream(
        self,
        adapter: "ProviderAdapter",
        last_message: "Message",
        history: List["Message"],
        config: "ModelConfig",
    ) -> AsyncIterator["StreamChunk"]:
        """Run the adapter with rotation on rate limits, yielding chunks as they arrive.

        Raises:
            RetriesExhaustedError: Every attempt was rate limited
            RelayChatError: Any non-rate-limit failure, unchanged
        """
        provider = adapter.provider.value
        state = RetryState(max_retries=self.max_retries)

        while state.can_attempt():
            api_key = adapter.key_manager.get_next_key()
            provider_attempts_total.labels(provider=provider).inc()

            error: Optional[Exception] = None
            try:
                async with aclosing(adapter.open_stream(last_message, history, config, api_key)) as chunks:
                    async for chunk in chunks:
                        yield chunk
            except Exception as e:
                error = e

            if error is None:
                return

            decision = state.decide(error)

            if decision is RetryDecision.PROPAGATE:
                raise error

            if decision is RetryDecision.EXHAUSTED:
                retries_exhausted_total.labels(provider=provider).inc()
                raise RetriesExhaustedError(
                    f"{provider} rate limited on all {state.attempts} attempts: {error}",
                    provider=provider,
                    attempts=state.attempts,
                ) from error

            adapter.key_manager.mark_key_failed(api_key)

            logger.warning(
                f"{provider} rate limit hit, rotating to next API key "
                f"(attempt {state.attempts}/{state.max_retries})"
            )
            key_rotations_total.labels(provider=provider).inc()

            delay = self.matrix.get_delay(state.attempts)
            if delay > 0:
                await asyncio.sleep(delay)

            state.advance()

        raise RetriesExhaustedError(
            f"{provider} failed to generate a response after {state.max_retries} attempts",
            provider=provider,
            attempts=state.max_retries,
        )
