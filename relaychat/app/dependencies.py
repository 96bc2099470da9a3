"""Shared dependencies and utilities for the relaychat application.

This module contains:
- The provider availability registry (static metadata + environment)
- Global state management (config, key pools, HTTP client, adapters)
- Application state initialization and shutdown
"""
import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple, Union

import httpx

from relaychat.adapters.llm.base import ProviderAdapter
from relaychat.adapters.llm.factory import (
    PROVIDERS,
    ProviderInfo,
    create_adapter,
    get_provider_info,
    resolve_provider,
)
from relaychat.app.schemas import ProviderId
from relaychat.config.loader import ConfigLoader
from relaychat.config.schema import RelayChatConfig
from relaychat.core.errors import UnknownProviderError
from relaychat.core.http_client import create_http_client
from relaychat.core.key_pool import KeyRotationManager, parse_keys
from relaychat.core.retry import RetryMatrix, StreamRetryPolicy

if TYPE_CHECKING:
    from relaychat.app.services import ProviderFallbackOrchestrator

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Provider availability: static metadata plus environment credentials.

    A provider is available when one of its credential variables holds at
    least one non-empty key. Reads the environment on every call.
    """

    def __init__(
        self,
        config: Optional[RelayChatConfig] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Args:
            config: Validated configuration (defaults if omitted)
            environ: Environment mapping (defaults to os.environ)
        """
        self.config = config or RelayChatConfig()
        self.environ = environ if environ is not None else os.environ

    def provider_info(self, provider: Union[str, ProviderId]) -> ProviderInfo:
        return get_provider_info(provider)

    def key_env(self, provider: ProviderId) -> Tuple[str, ...]:
        override = self.config.providers.get(provider)
        if override and override.key_env:
            return tuple(override.key_env)
        return PROVIDERS[provider].key_env

    def raw_keys(self, provider: Union[str, ProviderId]) -> str:
        """Delimited key string for a provider, empty if unconfigured."""
        provider_id = resolve_provider(provider)
        for name in self.key_env(provider_id):
            value = self.environ.get(name, "")
            if parse_keys(value):
                return value
        return ""

    def default_model(self, provider: Union[str, ProviderId]) -> str:
        provider_id = resolve_provider(provider)
        override = self.config.providers.get(provider_id)
        if override and override.default_model:
            return override.default_model
        return PROVIDERS[provider_id].default_model

    def is_provider_available(self, provider: Union[str, ProviderId]) -> bool:
        """Check if a provider has at least one configured key."""
        try:
            return bool(self.raw_keys(provider))
        except UnknownProviderError:
            return False

    def get_available_providers(self) -> List[ProviderId]:
        """Providers with configured keys, in preference order."""
        return [p for p in self.config.provider_order if self.is_provider_available(p)]

    def get_first_available_provider(self) -> Optional[ProviderId]:
        available = self.get_available_providers()
        return available[0] if available else None


def build_key_managers(registry: ProviderRegistry) -> Dict[ProviderId, KeyRotationManager]:
    """Create one key pool per registered provider.

    Unconfigured providers get a placeholder pool so their adapters fail
    with a configuration error instead of crashing.
    """
    rotation = registry.config.key_rotation
    return {
        provider: KeyRotationManager(
            registry.raw_keys(provider),
            provider=provider.value,
            cooldown_s=rotation.cooldown_s,
            max_failures=rotation.max_failures,
        )
        for provider in PROVIDERS
    }


def build_adapters(
    registry: ProviderRegistry,
    key_managers: Dict[ProviderId, KeyRotationManager],
    client: httpx.AsyncClient,
) -> Dict[ProviderId, ProviderAdapter]:
    """Create one adapter per provider, each owning its key pool."""
    retry = registry.config.retry
    adapters: Dict[ProviderId, ProviderAdapter] = {}
    for provider, key_manager in key_managers.items():
        override = registry.config.providers.get(provider)
        adapters[provider] = create_adapter(
            provider,
            key_manager=key_manager,
            client=client,
            retry_policy=StreamRetryPolicy(
                max_retries=retry.max_retries,
                matrix=RetryMatrix(backoff=retry.backoff, base_s=retry.base_s, max_s=retry.max_s),
            ),
            base_url=override.base_url if override else None,
            max_tokens=override.max_tokens if override else None,
        )
    return adapters


@dataclass
class AppState:
    """Application state container for all shared components.

    Key pools live for the whole process and are shared by every request.
    """
    config_loader: Optional[ConfigLoader] = None
    config: RelayChatConfig = field(default_factory=RelayChatConfig)
    registry: Optional[ProviderRegistry] = None
    http_client: Optional[httpx.AsyncClient] = None
    key_managers: Dict[ProviderId, KeyRotationManager] = field(default_factory=dict)
    adapters: Dict[ProviderId, ProviderAdapter] = field(default_factory=dict)
    orchestrator: Optional["ProviderFallbackOrchestrator"] = None


# Global application state instance
app_state = AppState()


def get_app_state() -> AppState:
    """Get the global application state.

    Returns:
        AppState: The global application state instance.
    """
    return app_state


def init_app_state(
    state: AppState,
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AppState:
    """Load configuration and build the provider stack into ``state``.

    Args:
        state: State container to populate
        config_path: Optional YAML config path
        environ: Environment mapping for credentials (defaults to os.environ)
        transport: Optional HTTP transport override

    Returns:
        The populated state
    """
    from relaychat.app.services import ProviderFallbackOrchestrator

    state.config_loader = ConfigLoader(config_path)
    state.config = state.config_loader.load()
    state.registry = ProviderRegistry(state.config, environ)
    state.http_client = create_http_client(state.config.http, transport=transport)
    state.key_managers = build_key_managers(state.registry)
    state.adapters = build_adapters(state.registry, state.key_managers, state.http_client)
    state.orchestrator = ProviderFallbackOrchestrator(
        state.registry,
        state.adapters,
        default_provider=state.config.default_provider,
    )

    available = state.registry.get_available_providers()
    if available:
        logger.info(f"Available providers: {', '.join(p.value for p in available)}")
    else:
        logger.warning("No provider API keys configured; chat requests will fail until keys are set")
    return state


async def close_app_state(state: AppState):
    """Release the shared HTTP client."""
    if state.http_client is not None:
        await state.http_client.aclose()
        state.http_client = None
