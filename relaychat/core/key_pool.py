"""Provider API key rotation with cooldown and failure tracking."""
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
import logging

from relaychat.metrics.prometheus import key_failures_total, key_pool_available_keys

logger = logging.getLogger(__name__)


# Sentinel used when a provider has no configured keys
PLACEHOLDER_KEY = "NO_API_KEY_PROVIDED"

# Seconds a failed key is skipped by selection
DEFAULT_COOLDOWN_S = 60.0

# Failures after which a key stays excluded until reset
DEFAULT_MAX_FAILURES = 3


@dataclass
class KeyStatus:
    """Health record for one key slot."""

    failure_count: int = 0
    failed_at: Optional[float] = None

    def reset(self):
        self.failure_count = 0
        self.failed_at = None


def parse_keys(api_keys: Union[str, Sequence[str], None]) -> List[str]:
    """Split a comma-separated key string (or a sequence) into clean keys."""
    if not api_keys:
        return []
    if isinstance(api_keys, str):
        candidates = api_keys.split(",")
    else:
        candidates = list(api_keys)
    return [key.strip() for key in candidates if key and key.strip()]


class KeyRotationManager:
    """Round-robin key selection with cooldown and quarantine for one provider.

    A key that fails is skipped until its cooldown window expires. A key that
    has failed ``max_failures`` times is skipped even after cooldown until it
    is reset. When no key qualifies, the key at the starting cursor is returned
    anyway; callers detect the resulting failure and call ``mark_key_failed``.

    All public methods are atomic with respect to each other, so one manager
    can be shared by concurrent requests.
    """

    def __init__(
        self,
        api_keys: Union[str, Sequence[str], None],
        provider: str = "unknown",
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        max_failures: int = DEFAULT_MAX_FAILURES,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            api_keys: Single key, comma-separated keys, or a sequence of keys
            provider: Provider name (for logs and metrics)
            cooldown_s: Cooldown window after a failure, in seconds
            max_failures: Failures before a key is quarantined
            clock: Time source returning seconds (defaults to time.monotonic)
        """
        self.provider = provider
        self.cooldown_s = cooldown_s
        self.max_failures = max_failures
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()

        self.keys = parse_keys(api_keys)
        if not self.keys:
            logger.warning(f"No API keys provided for {provider} - requests will fail until configured")
            self.keys = [PLACEHOLDER_KEY]
        else:
            logger.info(f"Initialized key rotation for {provider} with {len(self.keys)} key(s)")

        self.current_index = 0
        self.key_status: List[KeyStatus] = [KeyStatus() for _ in self.keys]
        self._update_gauge()

    @property
    def is_configured(self) -> bool:
        """Whether at least one real key was supplied."""
        return self.keys != [PLACEHOLDER_KEY]

    def _in_cooldown(self, status: KeyStatus, now: float) -> bool:
        return status.failed_at is not None and now - status.failed_at < self.cooldown_s

    def get_next_key(self) -> str:
        """Select the next usable key in round-robin order.

        Returns:
            A key string. If every key is cooling down or quarantined, the key
            at the starting cursor is returned as a last resort.
        """
        restored = False
        with self._lock:
            start_index = self.current_index
            now = self._clock()
            selected = None

            for _ in range(len(self.keys)):
                index = self.current_index
                status = self.key_status[index]

                if status.failed_at is not None:
                    if self._in_cooldown(status, now):
                        self.current_index = (index + 1) % len(self.keys)
                        continue
                    # Cooldown expired; quarantined keys wait for reset_key()
                    if status.failure_count < self.max_failures:
                        status.reset()
                        restored = True
                        logger.info(f"{self.provider} key {index} cooldown expired, key available again")

                if status.failure_count >= self.max_failures:
                    self.current_index = (index + 1) % len(self.keys)
                    continue

                self.current_index = (index + 1) % len(self.keys)
                logger.debug(f"Using {self.provider} key index {index} ({len(self.keys)} total)")
                selected = self.keys[index]
                break

            if selected is None:
                logger.warning(f"All {self.provider} keys are cooling down or failed, using fallback key {start_index}")
                selected = self.keys[start_index]

        if restored:
            self._update_gauge()
        return selected

    def mark_key_failed(self, key: str):
        """Record a failure for a key and start its cooldown.

        Unknown keys are ignored.
        """
        with self._lock:
            try:
                index = self.keys.index(key)
            except ValueError:
                return

            status = self.key_status[index]
            status.failure_count = min(status.failure_count + 1, self.max_failures)
            status.failed_at = self._clock()

            logger.warning(
                f"{self.provider} key {index} marked as failed "
                f"({status.failure_count}/{self.max_failures} failures)"
            )

            if self.current_index == index:
                self.current_index = (index + 1) % len(self.keys)

            key_failures_total.labels(provider=self.provider).inc()
        self._update_gauge()

    def reset_key(self, index: int):
        """Clear the failure state of a key slot."""
        with self._lock:
            if not 0 <= index < len(self.keys):
                return
            self.key_status[index].reset()
            logger.info(f"{self.provider} key {index} reset and available again")
        self._update_gauge()

    def get_key_count(self) -> int:
        """Get total number of keys (including the placeholder)."""
        return len(self.keys)

    def get_available_key_count(self) -> int:
        """Count keys that are neither cooling down nor quarantined.

        Diagnostics only; selection does not depend on it.
        """
        with self._lock:
            now = self._clock()
            return sum(
                1
                for status in self.key_status
                if status.failure_count < self.max_failures and not self._in_cooldown(status, now)
            )

    def get_pool_health(self) -> Dict[str, Any]:
        """Get health summary for this key pool.

        Returns:
            Dictionary with pool health info
        """
        available = self.get_available_key_count()
        with self._lock:
            now = self._clock()
            cooling = sum(1 for s in self.key_status if self._in_cooldown(s, now))
            quarantined = sum(1 for s in self.key_status if s.failure_count >= self.max_failures)
            return {
                "provider": self.provider,
                "configured": self.is_configured,
                "total_keys": len(self.keys),
                "available": available,
                "cooling_down": cooling,
                "quarantined": quarantined,
                "is_exhausted": available == 0,
            }

    def _update_gauge(self):
        key_pool_available_keys.labels(provider=self.provider).set(self.get_available_key_count())
