"""
Droid Gateway - Main Application

OpenAI-compatible proxy in front of Anthropic, Responses and common
chat endpoints, with a centrally managed upstream credential.
"""

from __future__ import annotations
import sys
from pathlib import Path
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config.settings import load_settings, load_env_settings
from core.handlers.credentials import CredentialStore
from core.handlers.logger import setup_logger
from core.middleware.request_context import RequestContextMiddleware
from core.middleware.error_handler import ExceptionHandlerMiddleware


VERSION = "1.0.0"


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: logger, settings, pooled HTTP client, credential store (with
    its eager refresh). Shutdown: close the HTTP client.
    """
    env = load_env_settings()
    settings = load_settings()

    logger = setup_logger(
        level="DEBUG" if settings.gateway.dev_mode else settings.gateway.log_level,
        json_format=not settings.gateway.dev_mode,
    )
    logger.info("Starting Droid Gateway...")
    logger.info(f"Dev mode: {settings.gateway.dev_mode}")
    logger.info(f"Loaded {len(settings.models)} models across {len(settings.endpoints)} endpoints")

    http_client = httpx.AsyncClient(
        limits=httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0
        ),
        timeout=httpx.Timeout(
            connect=10.0,
            read=settings.gateway.request_timeout,
            write=30.0,
            pool=10.0
        ),
        follow_redirects=True,
    )

    credential_store = CredentialStore.from_settings(env, settings.auth, http_client)
    try:
        await credential_store.initialize()
    except Exception:
        await http_client.aclose()
        raise

    app.state.http_client = http_client
    app.state.settings = settings
    app.state.credential_store = credential_store

    logger.info(
        f"Droid Gateway ready on {settings.gateway.host}:{settings.gateway.port}",
        extra={"models": [model.id for model in settings.models]}
    )

    yield

    logger.info("Shutting down Droid Gateway...")
    await http_client.aclose()
    logger.info("Shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title="Droid Gateway",
        description="OpenAI-compatible protocol translation proxy",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Last added = first executed
    app.add_middleware(ExceptionHandlerMiddleware)
    app.add_middleware(RequestContextMiddleware)

    @app.get("/health")
    async def health():
        """Liveness probe"""
        return {"status": "ok"}

    @app.get("/")
    async def root():
        """Gateway info"""
        return {
            "name": "droid-gateway",
            "version": VERSION,
            "description": "OpenAI Compatible API Proxy",
            "endpoints": [
                "GET /v1/models",
                "POST /v1/chat/completions",
                "POST /v1/responses",
                "POST /v1/messages",
            ],
        }

    from core.proxy import router as proxy_router
    app.include_router(proxy_router)

    return app


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

def main():
    """Run the gateway server"""
    import uvicorn

    settings = load_settings()

    uvicorn.run(
        "main:app",
        host=settings.gateway.host,
        port=settings.gateway.port,
        reload=settings.gateway.dev_mode,
        log_level=settings.gateway.log_level.lower(),
        access_log=settings.gateway.dev_mode,
        http="h11",
        ws="none",
    )


if __name__ == "__main__":
    main()
