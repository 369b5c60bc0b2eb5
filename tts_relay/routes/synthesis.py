"""Synthesis routes: the streaming WebSocket relay and a one-shot HTTP endpoint.

The WebSocket endpoint is mounted at ``/`` (and ``/ws``). Each connection gets
its own :class:`RequestQueue`; every ``synthesize-streaming`` message is
queued and relayed in submission order. Malformed messages are answered with
an ``error`` message and leave the queue untouched.
"""

import logging
from functools import partial

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from fastapi.responses import Response

from tts_relay.config import settings
from tts_relay.dependencies import get_chunk_relay, get_connection_registry, get_tts_service
from tts_relay.models.schemas import ErrorMessage, SynthesisRequest
from tts_relay.services.connection import (
    ClientConnection,
    MalformedRequestError,
    parse_client_message,
)
from tts_relay.services.connection_registry import ConnectionRegistry
from tts_relay.services.relay import ChunkRelay
from tts_relay.services.request_queue import RequestQueue
from tts_relay.services.tts_service import TTSService, UpstreamSynthesisError, file_content_type

logger = logging.getLogger(__name__)

router = APIRouter(tags=["synthesis"])

# Policy violation: used when the client asks for an unknown framing.
_CLOSE_POLICY_VIOLATION = 1008


@router.websocket("/")
@router.websocket("/ws")
async def synthesis_socket(
    websocket: WebSocket,
    relay: ChunkRelay = Depends(get_chunk_relay),
    registry: ConnectionRegistry = Depends(get_connection_registry),
) -> None:
    """Serve one relay client until it disconnects."""
    framing = websocket.query_params.get("framing", settings.relay_framing).strip().lower()
    try:
        connection = ClientConnection(websocket, framing=framing)
    except ValueError as e:
        logger.warning("Rejected connection: %s", e)
        await websocket.close(code=_CLOSE_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection.queue = RequestQueue(partial(relay.process, connection), connection.id)
    registry.on_connect(connection)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await _handle_message(connection, raw)
    finally:
        registry.on_disconnect(connection)


async def _handle_message(connection: ClientConnection, raw: str | bytes) -> None:
    try:
        request = parse_client_message(raw)
    except MalformedRequestError as e:
        logger.warning("Malformed message: %s", e, extra=connection.log_extra)
        await connection.send_control(ErrorMessage(message=str(e)))
        return
    if request is None:
        logger.debug("Ignored unsupported message type", extra=connection.log_extra)
        return
    connection.queue.submit(request)


@router.post("/api/synthesize")
async def synthesize(
    request: SynthesisRequest,
    tts: TTSService = Depends(get_tts_service),
) -> Response:
    """Synthesize the complete audio for *request* in one call."""
    if not settings.enable_sync_synthesis:
        raise HTTPException(status_code=503, detail="Synchronous synthesis is not enabled")
    try:
        audio = await tts.synthesize(request)
    except UpstreamSynthesisError as e:
        raise HTTPException(status_code=502, detail=f"Text-to-Speech synthesis failed: {e}")
    return Response(content=audio, media_type=file_content_type(request.audio_encoding))
