"""Per-connection state and chunk framing for relay WebSocket clients.

A :class:`ClientConnection` owns everything scoped to one live socket: its
framing strategy, its request queue and its chunk sequence counter. Sequence
numbers are per connection: they start at 0 and increase by one for every
framed chunk across all requests on the connection.

Two framings are supported:

* ``envelope``: a JSON ``audio-chunk`` header followed by a binary message
  with the raw bytes.
* ``binary``: one binary message, ``<uint32 LE sequence><uint8 last flag>``
  followed by the raw bytes.

Every control message and every framed chunk is sent under one lock per
connection, so the header and payload of an envelope chunk are never split
by another sender. Sends never raise. A failed send marks the connection
closed and later sends are dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import struct
import uuid
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from tts_relay.config import FRAMING_BINARY, FRAMING_ENVELOPE
from tts_relay.models.schemas import (
    SYNTHESIZE_STREAMING,
    AudioChunkMessage,
    ClientMessage,
    SynthesisRequest,
)

if TYPE_CHECKING:
    from fastapi import WebSocket

    from tts_relay.services.request_queue import RequestQueue

logger = logging.getLogger(__name__)

# uint32 little-endian sequence number, uint8 last-chunk flag.
BINARY_HEADER = struct.Struct("<IB")


class EnvelopeFramer:
    """Header message plus separate payload message per chunk."""

    name = FRAMING_ENVELOPE

    def encode(self, sequence_number: int, is_last: bool, payload: bytes) -> list:
        header = AudioChunkMessage(sequence_number=sequence_number, is_last_chunk=is_last)
        return [header.to_wire(), bytes(payload)]


class BinaryFramer:
    """Single packed message per chunk."""

    name = FRAMING_BINARY

    def encode(self, sequence_number: int, is_last: bool, payload: bytes) -> list:
        return [BINARY_HEADER.pack(sequence_number, 1 if is_last else 0) + bytes(payload)]


def decode_binary_frame(frame: bytes) -> tuple[int, bool, bytes]:
    """Split a binary-framed chunk into (sequence number, last flag, payload)."""
    if len(frame) < BINARY_HEADER.size:
        raise ValueError(f"Frame too short: {len(frame)} bytes")
    sequence_number, flag = BINARY_HEADER.unpack_from(frame)
    return sequence_number, bool(flag), frame[BINARY_HEADER.size:]


_FRAMERS = {
    FRAMING_ENVELOPE: EnvelopeFramer,
    FRAMING_BINARY: BinaryFramer,
}


def get_framer(framing: str) -> EnvelopeFramer | BinaryFramer:
    try:
        return _FRAMERS[framing]()
    except KeyError:
        raise ValueError(f"Unknown framing: {framing!r}") from None


class ClientConnection:
    """State of one live relay client connection."""

    def __init__(self, websocket: WebSocket, framing: str = FRAMING_ENVELOPE) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.framer = get_framer(framing)
        self.next_sequence_number = 0
        self.queue: RequestQueue | None = None
        self.closed = False
        self._send_lock = asyncio.Lock()

    @property
    def log_extra(self) -> dict[str, str]:
        return {"connection_id": self.id}

    def close(self) -> int:
        """Mark the connection closed and drop requests that have not started."""
        self.closed = True
        if self.queue is None:
            return 0
        return self.queue.discard_pending()

    async def send_control(self, message: BaseModel) -> bool:
        async with self._send_lock:
            return await self._send(message.to_wire())

    async def send_chunk(self, payload: bytes, *, is_last: bool) -> bool:
        """Frame *payload* with the next sequence number and send it."""
        async with self._send_lock:
            sequence_number = self.next_sequence_number
            self.next_sequence_number += 1
            sent = True
            for frame in self.framer.encode(sequence_number, is_last, payload):
                sent = await self._send(frame) and sent
            return sent

    async def _send(self, frame: dict | bytes) -> bool:
        if self.closed:
            logger.debug("Dropped send on closed connection", extra=self.log_extra)
            return False
        try:
            if isinstance(frame, bytes):
                await self.websocket.send_bytes(frame)
            else:
                await self.websocket.send_json(frame)
        except Exception as e:
            # Client went away mid-send; the in-flight request keeps running.
            self.closed = True
            logger.warning("Send on closed connection failed: %s", e, extra=self.log_extra)
            return False
        return True


def parse_client_message(raw: str | bytes) -> SynthesisRequest | None:
    """Parse one inbound message.

    Returns the synthesis request, or ``None`` for message types the relay
    does not handle. Raises :class:`MalformedRequestError` for anything that
    cannot be parsed or validated.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRequestError("Message is not valid UTF-8") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedRequestError(f"Invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedRequestError("Message must be a JSON object")

    try:
        envelope = ClientMessage.model_validate(data)
    except ValidationError as e:
        raise MalformedRequestError(_describe(e)) from e
    if envelope.type != SYNTHESIZE_STREAMING:
        return None

    try:
        return SynthesisRequest.model_validate(data)
    except ValidationError as e:
        raise MalformedRequestError(_describe(e)) from e


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "message"
    return f"Invalid request: {location}: {first.get('msg', 'invalid value')}"


class MalformedRequestError(ValueError):
    """Raised when an inbound message cannot be parsed into a request."""
