"""OpenRouter LLM adapter."""
from typing import Any, Dict, List

from relaychat.adapters.llm.openai_compat import OpenAICompatibleAdapter
from relaychat.app.schemas import Message, ModelConfig, ProviderId


class OpenRouterAdapter(OpenAICompatibleAdapter):
    """OpenRouter API adapter.

    Supports top-k and passes the thinking budget as a reasoning token
    budget. Search grounding is not supported.
    """

    provider = ProviderId.OPENROUTER
    base_url = "https://openrouter.ai/api/v1"
    # Kept low to stay within free tier limits
    default_max_tokens = 1000

    supports_thinking = True
    supports_top_k = True

    app_title = "QYNTRA"
    app_referer = "http://localhost"

    def prepare_request(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
    ) -> Dict[str, Any]:
        payload = super().prepare_request(last_message, history, config)
        if self.supports_thinking and config.thinking_budget > 0:
            payload["reasoning"] = {"max_tokens": config.thinking_budget}
        return payload

    def headers(self, api_key: str) -> Dict[str, str]:
        headers = super().headers(api_key)
        headers["HTTP-Referer"] = self.app_referer
        headers["X-Title"] = self.app_title
        return headers
