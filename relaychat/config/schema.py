"""Pydantic schemas for relaychat configuration validation."""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from relaychat.app.schemas import ProviderId


class KeyRotationConfig(BaseModel):
    """Key rotation policy, applied to every provider's key pool."""

    cooldown_s: float = Field(default=60.0, gt=0, description="Seconds a failed key is skipped")
    max_failures: int = Field(default=3, gt=0, description="Failures before a key is quarantined until reset")


class RetryConfig(BaseModel):
    """Credential-rotating retry policy for rate-limit errors."""

    max_retries: int = Field(default=3, gt=0, description="Adapter invocations per provider")
    backoff: str = Field(default="none", description="Backoff strategy: none, exp-jitter, exp, linear")
    base_s: float = Field(default=1.0, gt=0, description="Base delay in seconds")
    max_s: float = Field(default=10.0, gt=0, description="Maximum delay in seconds")

    @field_validator("backoff")
    @classmethod
    def validate_backoff(cls, v: str) -> str:
        allowed = {"none", "exp-jitter", "exp", "linear"}
        if v not in allowed:
            raise ValueError(f"backoff must be one of {sorted(allowed)}, got '{v}'")
        return v


class HTTPConfig(BaseModel):
    """Shared HTTP client settings."""

    timeout_s: float = Field(default=120.0, gt=0, le=600, description="Read timeout for streaming responses")
    connect_timeout_s: float = Field(default=10.0, gt=0, description="Connect timeout")
    max_connections: int = Field(default=100, gt=0)
    max_keepalive_connections: int = Field(default=20, ge=0)


class ProviderConfig(BaseModel):
    """Per-provider overrides. Unset fields keep the registry defaults."""

    base_url: Optional[str] = Field(default=None, description="API base URL")
    default_model: Optional[str] = Field(default=None, description="Model used when falling back to this provider")
    max_tokens: Optional[int] = Field(default=None, gt=0, description="Output ceiling when the request sets none")
    key_env: Optional[List[str]] = Field(
        default=None, description="Environment variables holding comma-separated keys, first non-empty wins"
    )


class RelayChatConfig(BaseModel):
    """Root configuration model."""

    default_provider: ProviderId = Field(default=ProviderId.GEMINI, description="Primary provider when a request names none")
    provider_order: List[ProviderId] = Field(
        default_factory=lambda: [ProviderId.GEMINI, ProviderId.GROQ, ProviderId.OPENROUTER],
        description="Fallback preference order",
    )
    providers: Dict[ProviderId, ProviderConfig] = Field(default_factory=dict)
    key_rotation: KeyRotationConfig = Field(default_factory=KeyRotationConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)

    @field_validator("provider_order")
    @classmethod
    def validate_provider_order(cls, v: List[ProviderId]) -> List[ProviderId]:
        if len(set(v)) != len(v):
            raise ValueError("provider_order must not contain duplicates")
        return v
