"""OpenAI-compatible chat completions adapter."""
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Union

from relaychat.adapters.llm.base import ProviderAdapter
from relaychat.app.schemas import Message, ModelConfig, Role, StreamChunk
from relaychat.config.defaults import FALLBACK_SYSTEM_INSTRUCTION


class OpenAICompatibleAdapter(ProviderAdapter):
    """Adapter for providers speaking the OpenAI chat completions SSE protocol."""

    api_path = "/chat/completions"
    default_system_instruction = FALLBACK_SYSTEM_INSTRUCTION

    ROLE_MAP = {
        Role.USER: "user",
        Role.MODEL: "assistant",
    }

    def _content(self, message: Message) -> Union[str, List[Dict[str, Any]]]:
        """Plain text, or text plus an inline image part when an attachment is present."""
        if not message.attachment or not self.supports_attachments:
            return message.content
        return [
            {"type": "text", "text": message.content},
            {"type": "image_url", "image_url": {"url": message.attachment.to_data_url()}},
        ]

    def build_messages(self, last_message: Message, history: List[Message]) -> List[Dict[str, Any]]:
        """Transcript (without the duplicated final history entry) plus the current turn."""
        messages = [
            {"role": self.ROLE_MAP[msg.role], "content": self._content(msg)}
            for msg in self.build_transcript(history)
        ]
        messages.append({"role": "user", "content": self._content(last_message)})
        return messages

    def prepare_request(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
    ) -> Dict[str, Any]:
        """Prepare chat completions request payload."""
        payload: Dict[str, Any] = {
            "model": config.model,
            "messages": [
                {"role": "system", "content": self.system_instruction(config)},
                *self.build_messages(last_message, history),
            ],
            "stream": True,
        }

        if config.temperature is not None:
            payload["temperature"] = config.temperature
        if config.top_p is not None:
            payload["top_p"] = config.top_p
        if config.top_k is not None and self.supports_top_k:
            payload["top_k"] = config.top_k

        max_tokens = self.max_tokens(config)
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        return payload

    def headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def parse_chunk(self, chunk_data: Dict[str, Any]) -> StreamChunk:
        """Extract the text delta from one completion chunk."""
        choices = chunk_data.get("choices") or []
        if not choices:
            return StreamChunk()
        delta = choices[0].get("delta") or {}
        return StreamChunk(text=delta.get("content") or "")

    async def open_stream(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
        api_key: str,
    ) -> AsyncIterator[StreamChunk]:
        """Stream chat completion, skipping empty deltas."""
        self._check_key(api_key)

        url = f"{self.base_url.rstrip('/')}{self.api_path}"
        payload = self.prepare_request(last_message, history, config)

        async with aclosing(self._iter_sse_data(url, payload, self.headers(api_key))) as events:
            async for chunk_data in events:
                if "error" in chunk_data:
                    raise self._stream_error(chunk_data["error"])

                chunk = self.parse_chunk(chunk_data)
                if chunk.text:
                    yield chunk
