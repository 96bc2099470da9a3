"""Provider adapters for relaychat."""
from relaychat.adapters.llm.base import ProviderAdapter
from relaychat.adapters.llm.factory import PROVIDERS, ProviderInfo, create_adapter, get_provider_info
from relaychat.adapters.llm.gemini import GeminiAdapter
from relaychat.adapters.llm.groq import GroqAdapter
from relaychat.adapters.llm.openrouter import OpenRouterAdapter

__all__ = [
    "PROVIDERS",
    "GeminiAdapter",
    "GroqAdapter",
    "OpenRouterAdapter",
    "ProviderAdapter",
    "ProviderInfo",
    "create_adapter",
    "get_provider_info",
]
