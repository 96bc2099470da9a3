"""Shared HTTP client for upstream provider APIs."""
from typing import Optional

import httpx

from relaychat.config.schema import HTTPConfig


def create_http_client(
    config: Optional[HTTPConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the HTTP client shared by every adapter.

    No request-level deadline is imposed beyond the transport timeouts;
    timeouts surface as transport errors.

    Args:
        config: HTTP settings (defaults if omitted)
        transport: Optional transport override (tests use httpx.MockTransport)

    Returns:
        Configured httpx.AsyncClient with connection pooling
    """
    config = config or HTTPConfig()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_s, connect=config.connect_timeout_s),
        limits=httpx.Limits(
            max_connections=config.max_connections,
            max_keepalive_connections=config.max_keepalive_connections,
        ),
        transport=transport,
    )
