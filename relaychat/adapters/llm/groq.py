"""Groq LLM adapter."""
from relaychat.adapters.llm.openai_compat import OpenAICompatibleAdapter
from relaychat.app.schemas import ProviderId


class GroqAdapter(OpenAICompatibleAdapter):
    """Groq API adapter.

    No search grounding, extended reasoning or top-k; those settings are ignored.
    """

    provider = ProviderId.GROQ
    base_url = "https://api.groq.com/openai/v1"
    default_max_tokens = 8000
