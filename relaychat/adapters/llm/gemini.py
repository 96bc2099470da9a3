"""Google Gemini LLM adapter."""
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Optional
import logging

from relaychat.adapters.llm.base import ProviderAdapter
from relaychat.app.schemas import (
    GroundingChunk,
    GroundingMetadata,
    Message,
    ModelConfig,
    ProviderId,
    StreamChunk,
    WebSource,
)
from relaychat.config.defaults import DEFAULT_SYSTEM_INSTRUCTION
from relaychat.core.errors import ProviderError

logger = logging.getLogger(__name__)


def message_parts(message: Message) -> List[Dict[str, Any]]:
    """Text part plus an inlineData part for the attachment, if any."""
    parts: List[Dict[str, Any]] = [{"text": message.content}]
    if message.attachment:
        parts.append({
            "inlineData": {
                "mimeType": message.attachment.mime_type,
                "data": message.attachment.data,
            }
        })
    return parts


def parse_grounding(candidate: Dict[str, Any]) -> Optional[GroundingMetadata]:
    """Extract web sources from a candidate's groundingMetadata."""
    metadata = candidate.get("groundingMetadata") or {}
    chunks = []
    for raw in metadata.get("groundingChunks") or []:
        web = raw.get("web") or {}
        if web.get("uri"):
            chunks.append(GroundingChunk(web=WebSource(uri=web["uri"], title=web.get("title") or "")))
    if not chunks:
        return None
    return GroundingMetadata(grounding_chunks=chunks)


class ChatSession:
    """Chat state bound to one (model, search-enabled) pair.

    Holds the transcript in Gemini ``contents`` form together with the
    generation settings it was created with.
    """

    def __init__(
        self,
        model: str,
        use_search: bool,
        contents: List[Dict[str, Any]],
        system_instruction: str,
        generation_config: Dict[str, Any],
        tools: Optional[List[Dict[str, Any]]] = None,
    ):
        self.model = model
        self.use_search = use_search
        self.contents = contents
        self.system_instruction = system_instruction
        self.generation_config = generation_config
        self.tools = tools

    def matches(self, config: ModelConfig) -> bool:
        return self.model == config.model and self.use_search == config.use_search

    def build_payload(self, parts: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Payload sending ``parts`` as the newest user turn."""
        payload: Dict[str, Any] = {
            "contents": [*self.contents, {"role": "user", "parts": parts}],
            "systemInstruction": {"parts": [{"text": self.system_instruction}]},
            "generationConfig": self.generation_config,
        }
        if self.tools:
            payload["tools"] = self.tools
        return payload

    def record_turn(self, parts: List[Dict[str, Any]], reply: str):
        """Append a completed exchange to the session transcript."""
        self.contents.append({"role": "user", "parts": parts})
        self.contents.append({"role": "model", "parts": [{"text": reply}]})


class GeminiAdapter(ProviderAdapter):
    """Gemini API adapter.

    Supports search grounding, extended reasoning (thinking budget), top-k and
    inline attachments. The chat session is rebuilt from the full local
    history on every request, so the remote conversation never diverges from
    the history the caller tracks. This resends the whole conversation each
    turn.
    """

    provider = ProviderId.GEMINI
    base_url = "https://generativelanguage.googleapis.com/v1beta"
    default_system_instruction = DEFAULT_SYSTEM_INSTRUCTION

    supports_search = True
    supports_thinking = True
    supports_top_k = True

    # Last session built, kept for inspection only. Concurrent requests each
    # build their own session and never read this attribute.
    session: Optional[ChatSession] = None

    def generation_config(self, config: ModelConfig) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {}
        if config.temperature is not None:
            generation_config["temperature"] = config.temperature
        if config.top_p is not None:
            generation_config["topP"] = config.top_p
        if config.top_k is not None and self.supports_top_k:
            generation_config["topK"] = config.top_k

        max_tokens = self.max_tokens(config)
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens

        if self.supports_thinking and config.thinking_budget > 0:
            generation_config["thinkingConfig"] = {"thinkingBudget": config.thinking_budget}
        return generation_config

    def start_session(self, config: ModelConfig, history: List[Message]) -> ChatSession:
        """Create a session from ``history`` minus its last entry."""
        contents = [
            {"role": msg.role.value, "parts": message_parts(msg)}
            for msg in self.build_transcript(history)
        ]
        tools = [{"googleSearch": {}}] if config.use_search and self.supports_search else None

        session = ChatSession(
            model=config.model,
            use_search=config.use_search,
            contents=contents,
            system_instruction=self.system_instruction(config),
            generation_config=self.generation_config(config),
            tools=tools,
        )
        if self.session is not None and not self.session.matches(config):
            logger.debug(f"Gemini session switched to model={config.model} search={config.use_search}")
        self.session = session
        return session

    def prepare_request(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
    ) -> Dict[str, Any]:
        """Prepare Gemini request payload."""
        session = self.start_session(config, history)
        return session.build_payload(message_parts(last_message))

    def parse_chunk(self, chunk_data: Dict[str, Any]) -> StreamChunk:
        """Normalize one streamGenerateContent chunk."""
        candidates = chunk_data.get("candidates") or []
        if not candidates:
            feedback = chunk_data.get("promptFeedback") or {}
            if feedback.get("blockReason"):
                raise ProviderError(
                    f"gemini blocked the prompt: {feedback['blockReason']}",
                    provider=self.provider.value,
                )
            return StreamChunk()

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if not part.get("thought"))
        return StreamChunk(text=text, grounding=parse_grounding(candidate))

    async def open_stream(
        self,
        last_message: Message,
        history: List[Message],
        config: ModelConfig,
        api_key: str,
    ) -> AsyncIterator[StreamChunk]:
        """Stream content from Gemini.

        Gemini uses SSE with one GenerateContentResponse JSON object per
        ``data:`` line. Grounding metadata may arrive on any chunk; later
        values supersede earlier ones.
        """
        self._check_key(api_key)

        session = self.start_session(config, history)
        parts = message_parts(last_message)
        payload = session.build_payload(parts)

        url = f"{self.base_url.rstrip('/')}/models/{config.model}:streamGenerateContent?alt=sse"
        headers = {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }

        reply: List[str] = []
        async with aclosing(self._iter_sse_data(url, payload, headers)) as events:
            async for chunk_data in events:
                if "error" in chunk_data:
                    raise self._stream_error(chunk_data["error"])

                chunk = self.parse_chunk(chunk_data)
                if chunk.text or chunk.grounding:
                    reply.append(chunk.text)
                    yield chunk

        session.record_turn(parts, "".join(reply))
