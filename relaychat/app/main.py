"""relaychat FastAPI application.

This is the main application module that:
- Initializes the FastAPI application
- Configures middleware (CORS, exception handling)
- Registers all route handlers
- Manages application lifespan (startup/shutdown)
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relaychat import __version__
from relaychat.app.dependencies import close_app_state, get_app_state, init_app_state
from relaychat.core.errors import ConfigurationError, RelayChatError

# Configure structured JSON logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(message)s",
)
logger = logging.getLogger(__name__)


def build_lifespan(**init_kwargs):
    """Create the lifespan manager building the global app state on startup.

    Args:
        init_kwargs: Forwarded to init_app_state (environ, transport, config_path)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Handles startup initialization and shutdown cleanup for:
        - Configuration loading and validation
        - Key pools, HTTP client, adapters, and orchestrator
        """
        app_state = get_app_state()

        init_kwargs.setdefault(
            "config_path", os.getenv("RELAYCHAT_CONFIG_PATH", os.getenv("RELAYCHAT_CONFIG"))
        )
        logger.info(f"Loading configuration from {init_kwargs['config_path'] or 'defaults'}")
        init_app_state(app_state, **init_kwargs)
        logger.info(f"relaychat started with {len(app_state.adapters)} provider adapters")

        yield

        logger.info("Shutting down relaychat...")
        await close_app_state(app_state)

    return lifespan


def create_app(**init_kwargs) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        init_kwargs: Forwarded to init_app_state (tests pass environ and transport)

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="relaychat",
        version=__version__,
        description=(
            "Streaming chat orchestration across multiple LLM providers: "
            "API key rotation, rate-limit retries, and provider fallback."
        ),
        lifespan=build_lifespan(**init_kwargs),
    )

    _configure_cors(app)
    _register_exception_handlers(app)
    _register_routes(app)

    return app


def _configure_cors(app: FastAPI) -> None:
    """Configure CORS middleware for browser chat clients."""
    cors_origins_env = os.getenv("CORS_ORIGINS", "*")
    is_production = os.getenv("ENVIRONMENT", "").lower() == "production"

    if cors_origins_env == "*":
        if is_production:
            logger.warning(
                "SECURITY WARNING: CORS_ORIGINS is set to '*' in production. "
                "Consider restricting to specific origins."
            )
        cors_origins = ["*"]
    else:
        cors_origins = _validate_cors_origins(cors_origins_env)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )


def _validate_cors_origins(cors_origins_env: str) -> List[str]:
    """Validate and filter CORS origins.

    Args:
        cors_origins_env: Comma-separated CORS origins string

    Returns:
        List of validated CORS origins
    """
    validated_origins = []
    for origin in (o.strip() for o in cors_origins_env.split(",")):
        if not origin:
            continue
        if not (origin.startswith("http://") or origin.startswith("https://")):
            logger.warning(f"Invalid CORS origin format (skipping): {origin}")
            continue
        validated_origins.append(origin)
    return validated_origins


def _register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(RelayChatError)
    async def relaychat_exception_handler(request: Request, exc: RelayChatError):
        """Errors raised before a stream starts."""
        status_code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if isinstance(exc, ConfigurationError)
            else status.HTTP_502_BAD_GATEWAY
        )
        return JSONResponse(status_code=status_code, content={"success": False, "error": exc.to_dict()})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": f"Internal server error: {exc}",
                },
            },
        )


def _register_routes(app: FastAPI) -> None:
    """Register all route handlers."""
    from relaychat.app.routes import chat, health

    app.include_router(health.router)
    app.include_router(chat.router)


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
