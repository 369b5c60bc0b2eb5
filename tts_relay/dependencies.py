"""FastAPI dependency injection for process-wide service singletons.

Provides lazy-initialized, cacheable service instances that can be
overridden in tests via ``app.dependency_overrides``. The cache and the
connection registry are shared by every connection for the life of the
process and are never persisted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tts_relay.config import settings

if TYPE_CHECKING:
    from tts_relay.services.audio_cache import AudioCache
    from tts_relay.services.connection_registry import ConnectionRegistry
    from tts_relay.services.relay import ChunkRelay
    from tts_relay.services.tts_service import TTSService

logger = logging.getLogger(__name__)

# Lazy singletons: initialised on first use, reused for lifetime.
_tts_service: TTSService | None = None
_audio_cache: AudioCache | None = None
_connection_registry: ConnectionRegistry | None = None
_chunk_relay: ChunkRelay | None = None


def get_tts_service() -> TTSService:
    """Return (or create) the singleton TTSService."""
    global _tts_service
    if _tts_service is None:
        from tts_relay.services.tts_service import TTSService
        _tts_service = TTSService()
        logger.info("Initialized TTSService (sample_rate=%d)", settings.sample_rate_hertz)
    return _tts_service


def get_audio_cache() -> AudioCache:
    """Return (or create) the singleton AudioCache."""
    global _audio_cache
    if _audio_cache is None:
        from tts_relay.services.audio_cache import AudioCache
        _audio_cache = AudioCache(
            max_entries=settings.cache_max_size, max_bytes=settings.cache_max_bytes
        )
        logger.info(
            "Initialized AudioCache (max_entries=%d, max_bytes=%d)",
            settings.cache_max_size, settings.cache_max_bytes,
        )
    return _audio_cache


def get_connection_registry() -> ConnectionRegistry:
    """Return (or create) the singleton ConnectionRegistry."""
    global _connection_registry
    if _connection_registry is None:
        from tts_relay.services.connection_registry import ConnectionRegistry
        _connection_registry = ConnectionRegistry()
    return _connection_registry


def get_chunk_relay() -> ChunkRelay:
    """Return (or create) the singleton ChunkRelay wired to the shared cache."""
    global _chunk_relay
    if _chunk_relay is None:
        from tts_relay.services.relay import ChunkRelay
        _chunk_relay = ChunkRelay(get_tts_service(), get_audio_cache())
    return _chunk_relay
