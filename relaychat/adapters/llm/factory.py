"""Provider registry and adapter factory."""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type, Union

import httpx

from relaychat.adapters.llm.base import ProviderAdapter
from relaychat.adapters.llm.gemini import GeminiAdapter
from relaychat.adapters.llm.groq import GroqAdapter
from relaychat.adapters.llm.openrouter import OpenRouterAdapter
from relaychat.app.schemas import ProviderId
from relaychat.core.errors import UnknownProviderError
from relaychat.core.key_pool import KeyRotationManager
from relaychat.core.retry import StreamRetryPolicy


@dataclass(frozen=True)
class ProviderInfo:
    """Static metadata for one provider."""

    id: ProviderId
    display_name: str
    default_model: str
    models: Tuple[str, ...]
    key_env: Tuple[str, ...]  # first non-empty variable wins
    adapter_cls: Type[ProviderAdapter]


PROVIDERS: Dict[ProviderId, ProviderInfo] = {
    ProviderId.GEMINI: ProviderInfo(
        id=ProviderId.GEMINI,
        display_name="Google Gemini",
        default_model="gemini-2.5-flash",
        models=("gemini-2.5-flash", "gemini-3-pro-preview"),
        key_env=("GEMINI_API_KEY", "API_KEY"),
        adapter_cls=GeminiAdapter,
    ),
    ProviderId.GROQ: ProviderInfo(
        id=ProviderId.GROQ,
        display_name="Groq",
        default_model="llama-3.3-70b-versatile",
        models=("llama-3.3-70b-versatile", "llama-3.1-8b-instant", "mixtral-8x7b-32768", "gemma2-9b-it"),
        key_env=("GROQ_API_KEY",),
        adapter_cls=GroqAdapter,
    ),
    ProviderId.OPENROUTER: ProviderInfo(
        id=ProviderId.OPENROUTER,
        display_name="OpenRouter",
        default_model="meta-llama/llama-3.3-70b-instruct:free",
        models=("meta-llama/llama-3.3-70b-instruct:free", "deepseek/deepseek-r1:free"),
        key_env=("OPENROUTER_API_KEY",),
        adapter_cls=OpenRouterAdapter,
    ),
}


def resolve_provider(provider: Union[str, ProviderId]) -> ProviderId:
    """Map a provider identifier to its enum value.

    Raises:
        UnknownProviderError: If the identifier is not registered
    """
    try:
        provider_id = ProviderId(provider.lower() if isinstance(provider, str) else provider)
    except ValueError:
        raise UnknownProviderError(f"Provider '{provider}' not found", provider=str(provider)) from None
    if provider_id not in PROVIDERS:
        raise UnknownProviderError(f"Provider '{provider_id.value}' not found", provider=provider_id.value)
    return provider_id


def get_provider_info(provider: Union[str, ProviderId]) -> ProviderInfo:
    """Get static metadata for a provider."""
    return PROVIDERS[resolve_provider(provider)]


def create_adapter(
    provider: Union[str, ProviderId],
    key_manager: KeyRotationManager,
    client: httpx.AsyncClient,
    retry_policy: Optional[StreamRetryPolicy] = None,
    base_url: Optional[str] = None,
    max_tokens: Optional[int] = None,
) -> ProviderAdapter:
    """Construct the adapter for a provider."""
    info = get_provider_info(provider)
    return info.adapter_cls(
        key_manager=key_manager,
        client=client,
        retry_policy=retry_policy,
        base_url=base_url,
        max_tokens=max_tokens,
    )
