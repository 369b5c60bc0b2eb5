"""Pydantic models for the relay's inbound requests and outbound messages.

Inbound fields use the camelCase names browser clients send; the Python
attributes are snake_case and either spelling is accepted. Outbound control
messages serialise with ``model_dump(by_alias=True, exclude_none=True)``.
"""

from __future__ import annotations

import hashlib
import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Pattern: only printable characters, no control chars / null bytes.
_SAFE_TEXT_RE = re.compile(r"^[^\x00-\x08\x0b\x0c\x0e-\x1f]*$")

# Joins fingerprint fields; cannot appear in any validated field.
_FINGERPRINT_SEPARATOR = "\x00"

SYNTHESIZE_STREAMING = "synthesize-streaming"

DEFAULT_LANGUAGE_CODE = "en-IN"
DEFAULT_VOICE_NAME = "en-IN-Journey-O"


class SsmlGender(str, Enum):
    """Voice gender accepted by Cloud TTS voice selection."""

    NEUTRAL = "NEUTRAL"
    MALE = "MALE"
    FEMALE = "FEMALE"


class AudioEncoding(str, Enum):
    """Audio encodings the relay can request from Cloud TTS."""

    LINEAR16 = "LINEAR16"
    MP3 = "MP3"
    OGG_OPUS = "OGG_OPUS"
    MULAW = "MULAW"
    ALAW = "ALAW"


# ---------------------------------------------------------------------------
# Request models, validated at the connection boundary
# ---------------------------------------------------------------------------

class SynthesisRequest(BaseModel):
    """One synthesis request; immutable once parsed from client input."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str = Field(..., min_length=1, max_length=5000)
    language_code: str = Field(
        default=DEFAULT_LANGUAGE_CODE, alias="languageCode", min_length=2, max_length=35
    )
    ssml_gender: SsmlGender = Field(default=SsmlGender.NEUTRAL, alias="ssmlGender")
    name: str = Field(default=DEFAULT_VOICE_NAME, min_length=1, max_length=100)
    audio_encoding: AudioEncoding = Field(
        default=AudioEncoding.LINEAR16, alias="audioEncoding"
    )

    @field_validator("text")
    @classmethod
    def _sanitise_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Text must not be blank")
        if not _SAFE_TEXT_RE.match(v):
            raise ValueError("Text contains invalid characters")
        return v

    @field_validator("language_code", "name")
    @classmethod
    def _reject_control_chars(cls, v: str) -> str:
        if not _SAFE_TEXT_RE.match(v) or "\n" in v or "\t" in v:
            raise ValueError("Voice parameters contain invalid characters")
        return v.strip()

    @property
    def fingerprint(self) -> str:
        """Cache key derived from every field of the request."""
        raw = _FINGERPRINT_SEPARATOR.join(
            (
                self.text,
                self.language_code,
                self.ssml_gender.value,
                self.name,
                self.audio_encoding.value,
            )
        )
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ClientMessage(BaseModel):
    """Envelope of any JSON message received on a relay connection."""

    model_config = ConfigDict(extra="allow")

    # Messages without a type are ignored like any other unhandled type.
    type: str | None = Field(default=None, max_length=64)


# ---------------------------------------------------------------------------
# Outbound control messages
# ---------------------------------------------------------------------------

class _ControlMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class AudioInfoMessage(_ControlMessage):
    """Announces the start of a result and its content type."""

    type: Literal["audio-info"] = "audio-info"
    content_type: str = Field(..., alias="contentType")
    cached: bool | None = None


class AudioChunkMessage(_ControlMessage):
    """Envelope header sent just before the raw bytes of one chunk."""

    type: Literal["audio-chunk"] = "audio-chunk"
    sequence_number: int = Field(..., ge=0, alias="sequenceNumber")
    is_last_chunk: bool = Field(..., alias="isLastChunk")


class AudioCompleteMessage(_ControlMessage):
    type: Literal["audio-complete"] = "audio-complete"


class ErrorMessage(_ControlMessage):
    type: Literal["error"] = "error"
    message: str
