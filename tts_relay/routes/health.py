"""Health check endpoints for Cloud Run liveness / readiness probes.

``GET /`` keeps the plain-text response browser clients and load balancers
already probe; ``GET /api/health`` adds version, uptime, live connection
count and cache statistics for operators.
"""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from tts_relay.config import settings
from tts_relay.dependencies import get_audio_cache, get_connection_registry
from tts_relay.services.audio_cache import AudioCache
from tts_relay.services.connection_registry import ConnectionRegistry

router = APIRouter(tags=["health"])

_START_TIME = time.monotonic()


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "Streaming TTS Server is running"


@router.get("/api/health")
async def health_check(
    cache: AudioCache = Depends(get_audio_cache),
    registry: ConnectionRegistry = Depends(get_connection_registry),
) -> dict:
    """Return service health status with version, uptime, and relay state."""
    return {
        "status": "healthy",
        "service": settings.app_title,
        "version": settings.app_version,
        "uptime_seconds": round(time.monotonic() - _START_TIME),
        "active_connections": len(registry),
        "cache": cache.stats(),
        "features": {
            "relay_framing": settings.relay_framing,
            "sync_synthesis": settings.enable_sync_synthesis,
        },
    }
