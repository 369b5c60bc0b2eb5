"""Relays synthesis results to a client connection with ordering metadata.

For each request the relay first consults the shared :class:`AudioCache`.

* **Hit**: ``audio-info`` (``cached: true``), one chunk holding the full blob
  marked last, ``audio-complete``.
* **Miss**: ``audio-info`` (``cached: false``), one chunk per upstream audio
  chunk, an empty terminal chunk marked last, ``audio-complete``. The joined
  chunks are then offered to the cache.
* **Upstream error**: chunks already relayed stay relayed, followed by an
  ``error`` message; no terminal chunk, no ``audio-complete``, nothing cached.

The relay keeps consuming the upstream stream even if the client has gone
away, so a completed result still reaches the cache.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from tts_relay.models.schemas import (
    AudioCompleteMessage,
    AudioInfoMessage,
    ErrorMessage,
    SynthesisRequest,
)
from tts_relay.services.tts_service import AudioChunk, StreamError

if TYPE_CHECKING:
    from tts_relay.services.audio_cache import AudioCache
    from tts_relay.services.connection import ClientConnection
    from tts_relay.services.tts_service import TTSService

logger = logging.getLogger(__name__)


class ChunkRelay:
    """Streams one request's audio to one connection, via the cache when possible."""

    def __init__(self, tts_service: TTSService, cache: AudioCache) -> None:
        self._tts = tts_service
        self._cache = cache

    async def process(self, connection: ClientConnection, request: SynthesisRequest) -> bool:
        """Deliver *request* to *connection*. Returns False if synthesis failed."""
        fingerprint = request.fingerprint
        cached = self._cache.lookup(fingerprint)
        if cached is not None:
            await self._replay(connection, request, cached)
            return True
        return await self._relay_stream(connection, request, fingerprint)

    async def _replay(
        self, connection: ClientConnection, request: SynthesisRequest, blob: bytes
    ) -> None:
        await connection.send_control(
            AudioInfoMessage(content_type=self._tts.content_type(request), cached=True)
        )
        await connection.send_chunk(blob, is_last=True)
        await connection.send_control(AudioCompleteMessage())
        logger.info(
            "Replayed %d cached bytes for %d-char text",
            len(blob), len(request.text), extra=connection.log_extra,
        )

    async def _relay_stream(
        self, connection: ClientConnection, request: SynthesisRequest, fingerprint: str
    ) -> bool:
        start = time.monotonic()
        await connection.send_control(
            AudioInfoMessage(content_type=self._tts.content_type(request), cached=False)
        )

        chunks: list[bytes] = []
        failure: StreamError | None = None
        async for event in self._tts.stream(request):
            if isinstance(event, AudioChunk):
                chunks.append(event.audio)
                await connection.send_chunk(event.audio, is_last=False)
            elif isinstance(event, StreamError):
                failure = event

        if failure is not None:
            await connection.send_control(ErrorMessage(message=failure.message))
            logger.warning(
                "Synthesis failed after %d chunks: %s",
                len(chunks), failure.message, extra=connection.log_extra,
            )
            return False

        await connection.send_chunk(b"", is_last=True)
        await connection.send_control(AudioCompleteMessage())

        blob = b"".join(chunks)
        stored = self._cache.insert(fingerprint, blob)
        logger.info(
            "Relayed %d chunks (%d bytes) in %.1fms cached=%s",
            len(chunks), len(blob), (time.monotonic() - start) * 1000, stored,
            extra=connection.log_extra,
        )
        return True
