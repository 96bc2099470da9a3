"""Request/Response schemas for relaychat.

This module provides Pydantic models for:
- Chat messages, attachments, and generation config
- Grounding (citation) metadata
- Streamed output chunks
- HTTP request and response bodies
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class Role(str, Enum):
    """Conversation roles. Providers map these to their own vocabulary."""

    USER = "user"
    MODEL = "model"


class ProviderId(str, Enum):
    """Supported upstream LLM providers."""

    GEMINI = "gemini"
    GROQ = "groq"
    OPENROUTER = "openrouter"


class Attachment(BaseModel):
    """Single binary attachment sent inline with a message."""

    mime_type: str = Field(..., description="MIME type, e.g. 'image/png'")
    data: str = Field(..., description="Base64-encoded payload")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class WebSource(BaseModel):
    """Web source referenced by a grounded response."""

    uri: str
    title: str = ""


class GroundingChunk(BaseModel):
    web: Optional[WebSource] = None


class GroundingMetadata(BaseModel):
    """Citation metadata attached to a response by search-enabled providers."""

    grounding_chunks: List[GroundingChunk] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(chunk.web for chunk in self.grounding_chunks)

    @property
    def sources(self) -> List[WebSource]:
        return [chunk.web for chunk in self.grounding_chunks if chunk.web]


class Message(BaseModel):
    """One conversation turn.

    Only ``role``, ``content`` and ``attachment`` are sent upstream; the other
    fields belong to the chat UI and history store.
    """

    role: Role
    content: str = ""
    attachment: Optional[Attachment] = None
    id: Optional[str] = None
    timestamp: Optional[int] = None
    is_error: bool = False
    grounding_metadata: Optional[GroundingMetadata] = None


class ModelConfig(BaseModel):
    """Generation parameters and provider/model selection for one request."""

    provider: Optional[ProviderId] = Field(
        default=None, description="Preferred provider; defaults to the configured default provider"
    )
    model: str = Field(..., description="Provider-specific model identifier")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    top_k: Optional[int] = Field(default=None, ge=1)
    max_tokens: Optional[int] = Field(default=None, gt=0, description="Maximum output tokens")
    thinking_budget: int = Field(default=0, ge=0, description="Extended reasoning budget; 0 disables")
    use_search: bool = Field(default=False, description="Enable search grounding where supported")
    system_instruction: Optional[str] = None

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("model must not be empty")
        return v.strip()


class StreamChunk(BaseModel):
    """Incremental piece of a streamed response."""

    text: str = ""
    grounding: Optional[GroundingMetadata] = None
    provider: Optional[ProviderId] = None


class ChatStreamRequest(BaseModel):
    """Request schema for POST /v1/chat/stream.

    ``history`` is chronological and its last entry is the same turn as
    ``message``; that entry is never sent twice.
    """

    message: Message
    history: List[Message] = Field(default_factory=list)
    config: ModelConfig


class ProviderSummary(BaseModel):
    id: ProviderId
    display_name: str
    default_model: str
    models: List[str] = Field(default_factory=list)


class ProvidersResponse(BaseModel):
    """Response schema for GET /v1/providers."""

    providers: List[ProviderSummary]
    default_provider: Optional[ProviderId] = None
