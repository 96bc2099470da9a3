"""Health check and monitoring endpoints.

This module provides:
- GET /health - Basic health check
- GET /healthz - Key pool health per provider
- GET /metrics - Prometheus metrics
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from relaychat import __version__
from relaychat.app.dependencies import get_app_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str = __version__


class KeyPoolsResponse(BaseModel):
    """Key pool diagnostics response model."""

    status: str
    available_providers: list
    key_pools: Dict[str, Dict[str, Any]]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint for load balancers and monitoring."""
    return HealthResponse(status="ok")


@router.get("/healthz", response_model=KeyPoolsResponse)
async def healthz() -> KeyPoolsResponse:
    """Key pool health: degraded when no provider has a usable key."""
    state = get_app_state()
    pools = {
        provider.value: manager.get_pool_health()
        for provider, manager in state.key_managers.items()
    }
    available = state.registry.get_available_providers() if state.registry else []
    usable = any(pool["configured"] and pool["available"] > 0 for pool in pools.values())
    return KeyPoolsResponse(
        status="healthy" if usable else "degraded",
        available_providers=[p.value for p in available],
        key_pools=pools,
    )


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
