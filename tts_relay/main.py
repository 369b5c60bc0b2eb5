"""Streaming TTS relay application entry point.

Configures FastAPI with CORS, request logging, the health routes and the
synthesis routes (WebSocket relay plus one-shot HTTP synthesis). The Cloud
TTS client is created during startup so a missing or broken provider
configuration stops the process before it accepts connections.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tts_relay.config import settings
from tts_relay.dependencies import get_audio_cache, get_connection_registry, get_tts_service
from tts_relay.logging_config import setup_logging
from tts_relay.middleware import RequestLoggingMiddleware
from tts_relay.routes.health import router as health_router
from tts_relay.routes.synthesis import router as synthesis_router

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create the shared services at startup and log shutdown.

    Failure to construct the Cloud TTS client propagates and aborts startup.
    """
    get_tts_service()
    get_audio_cache()
    get_connection_registry()
    logger.info(
        "%s %s running on port %d (framing=%s, project=%s)",
        settings.app_title,
        settings.app_version,
        settings.port,
        settings.relay_framing,
        settings.gcp_project_id or "<default credentials>",
    )
    yield
    logger.info(
        "%s shutting down with %d active connections",
        settings.app_title,
        len(get_connection_registry()),
    )


app = FastAPI(
    title=settings.app_title,
    description=settings.app_description,
    version=settings.app_version,
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Request flow: CORS -> Logging -> route handler
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)

app.include_router(health_router)
app.include_router(synthesis_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tts_relay.main:app",
        host="0.0.0.0",
        port=settings.port,
    )
