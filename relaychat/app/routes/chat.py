"""Chat streaming and provider listing endpoints.

This module provides:
- POST /v1/chat/stream - Stream a reply as Server-Sent Events, with fallback
- GET /v1/providers - Providers currently usable, in preference order
"""
import json
import logging
from contextlib import aclosing
from typing import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from relaychat.app.dependencies import get_app_state
from relaychat.app.schemas import ChatStreamRequest, ProviderSummary, ProvidersResponse
from relaychat.app.services import FallbackRun, ProviderFallbackOrchestrator
from relaychat.core.errors import RelayChatError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Chat"])


def _sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


def _get_orchestrator() -> ProviderFallbackOrchestrator:
    state = get_app_state()
    if state.orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail={"type": "configuration_error", "message": "Chat service is not initialized"},
        )
    return state.orchestrator


async def chat_stream_generator(
    orchestrator: ProviderFallbackOrchestrator,
    request: ChatStreamRequest,
    run: FallbackRun,
) -> AsyncIterator[str]:
    """Handle a chat stream request - yields SSE events.

    Events:
    - chunk: one StreamChunk as JSON
    - done: serving provider and model, after a complete reply
    - error: {code, message, ...}; any text already sent is incomplete
    """
    try:
        stream = orchestrator.stream_message_with_fallback(
            request.message, request.history, request.config, run=run
        )
        async with aclosing(stream) as chunks:
            async for chunk in chunks:
                yield _sse("chunk", chunk.model_dump_json(exclude_none=True))
    except RelayChatError as e:
        logger.error(f"Chat stream {run.request_id} failed: {e}")
        yield _sse("error", json.dumps(e.to_dict()))
        return

    done = {
        "request_id": run.request_id,
        "provider": run.provider.value if run.provider else None,
        "model": run.model,
    }
    yield _sse("done", json.dumps(done))


@router.post(
    "/chat/stream",
    summary="Stream chat reply",
    description=(
        "Streams a reply as Server-Sent Events. Rate-limited keys are rotated "
        "and failed providers fall back to the next configured provider."
    ),
)
async def chat_stream(request: ChatStreamRequest):
    """Chat streaming endpoint with key rotation and provider fallback."""
    orchestrator = _get_orchestrator()
    # Configuration problems fail the request before any event is sent
    orchestrator.plan(request.config)
    run = FallbackRun()

    return StreamingResponse(
        chat_stream_generator(orchestrator, request, run),
        media_type="text/event-stream",
        headers={
            "X-Request-ID": run.request_id,
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers() -> ProvidersResponse:
    """List providers that have API keys configured, in fallback order."""
    orchestrator = _get_orchestrator()
    summaries = []
    for provider in orchestrator.get_available_providers():
        info = orchestrator.registry.provider_info(provider)
        summaries.append(
            ProviderSummary(
                id=provider,
                display_name=info.display_name,
                default_model=orchestrator.registry.default_model(provider),
                models=list(info.models),
            )
        )
    return ProvidersResponse(providers=summaries, default_provider=orchestrator.default_provider)
