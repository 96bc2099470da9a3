"""Structured logging for relaychat."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class StructuredLogger:
    """Structured JSON logger for chat stream requests."""

    def __init__(self, name: str = "relaychat"):
        self.logger = logging.getLogger(name)

    def log_stream(
        self,
        request_id: str,
        requested_provider: Optional[str],
        provider: Optional[str],  # serving provider, None if every provider failed
        model: Optional[str] = None,
        outcome: str = "success",  # "success", "error" or "cancelled"
        error_code: Optional[str] = None,
        tried: Optional[List[str]] = None,
        chunks: int = 0,
        latency_ms: int = 0,
        level: str = "INFO",
    ):
        """Log a stream summary as structured JSON.

        Args:
            request_id: Unique request identifier
            requested_provider: Primary provider the request asked for
            provider: Provider that served the response
            model: Model that served the response
            outcome: "success", "error" or "cancelled"
            error_code: Error code if outcome is "error"
            tried: Providers attempted, in order
            chunks: Number of chunks forwarded
            latency_ms: Time until the stream terminated, in milliseconds
            level: Log level (INFO, WARNING, ERROR)
        """
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "request_id": request_id,
            "requested_provider": requested_provider,
            "provider": provider,
            "outcome": outcome,
            "fallback_used": bool(provider and requested_provider and provider != requested_provider),
            "chunks": chunks,
            "latency_ms": latency_ms,
        }

        if model:
            log_entry["model"] = model
        if tried:
            log_entry["tried"] = tried

        if outcome == "error" and error_code:
            log_entry["error_code"] = error_code

        log_message = json.dumps(log_entry, ensure_ascii=False)

        if level == "ERROR":
            self.logger.error(log_message)
        elif level == "WARNING":
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)


# Global structured logger instance
structured_logger = StructuredLogger()
