"""Google Cloud Text-to-Speech adapter for streaming and one-shot synthesis.

A streaming call sends exactly two messages (voice/audio configuration, then
the input text) and half-closes. The provider's responses are pumped into an
``asyncio.Queue`` by a background task; :meth:`TTSService.stream` drains that
queue as a finite sequence of :class:`AudioChunk` events terminated by a
single :class:`StreamEnd` or :class:`StreamError`. Provider failures never
escape :meth:`TTSService.stream`; they surface as a ``StreamError``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Union

from google.cloud import texttospeech_v1 as texttospeech

from tts_relay.config import settings
from tts_relay.models.schemas import AudioEncoding, SynthesisRequest

logger = logging.getLogger(__name__)

# Content types for bytes produced by streaming_synthesize (headerless).
_STREAMING_CONTENT_TYPES = {
    AudioEncoding.MP3: "audio/mpeg",
    AudioEncoding.OGG_OPUS: "audio/ogg;codecs=opus",
    AudioEncoding.MULAW: "audio/basic",
    AudioEncoding.ALAW: "audio/x-alaw-basic",
}

# synthesize_speech wraps LINEAR16, MULAW and ALAW in a WAV header.
_FILE_CONTENT_TYPES = {
    AudioEncoding.LINEAR16: "audio/wav",
    AudioEncoding.MP3: "audio/mpeg",
    AudioEncoding.OGG_OPUS: "audio/ogg",
    AudioEncoding.MULAW: "audio/wav",
    AudioEncoding.ALAW: "audio/wav",
}


def streaming_content_type(encoding: AudioEncoding, sample_rate_hertz: int) -> str:
    """Content type announced to relay clients for a streamed result."""
    if encoding is AudioEncoding.LINEAR16:
        return f"audio/l16;rate={sample_rate_hertz}"
    return _STREAMING_CONTENT_TYPES[encoding]


def file_content_type(encoding: AudioEncoding) -> str:
    """Content type of a complete ``synthesize_speech`` result."""
    return _FILE_CONTENT_TYPES[encoding]


@dataclass(frozen=True)
class AudioChunk:
    audio: bytes


@dataclass(frozen=True)
class StreamEnd:
    pass


@dataclass(frozen=True)
class StreamError:
    message: str


SynthesisEvent = Union[AudioChunk, StreamEnd, StreamError]


class TTSService:
    """Converts text to speech using Google Cloud TTS."""

    def __init__(
        self,
        client=None,
        sample_rate_hertz: int | None = None,
        project_id: str | None = None,
    ) -> None:
        if client is None:
            project_id = settings.gcp_project_id if project_id is None else project_id
            # Quota and billing go to GCP_PROJECT_ID when set, else to the ADC project.
            options = {"quota_project_id": project_id} if project_id else None
            client = texttospeech.TextToSpeechAsyncClient(client_options=options)
        self._client = client
        self._sample_rate_hertz = sample_rate_hertz or settings.sample_rate_hertz

    @property
    def sample_rate_hertz(self) -> int:
        return self._sample_rate_hertz

    def content_type(self, request: SynthesisRequest) -> str:
        return streaming_content_type(request.audio_encoding, self._sample_rate_hertz)

    # ------------------------------------------------------------------
    # Streaming synthesis
    # ------------------------------------------------------------------

    async def stream(self, request: SynthesisRequest) -> AsyncIterator[SynthesisEvent]:
        """Yield audio events for *request* in the order the provider sent them."""
        events: asyncio.Queue[SynthesisEvent] = asyncio.Queue()
        pump = asyncio.create_task(self._pump(request, events))
        try:
            while True:
                event = await events.get()
                yield event
                if isinstance(event, (StreamEnd, StreamError)):
                    return
        finally:
            if not pump.done():
                pump.cancel()

    async def _pump(
        self, request: SynthesisRequest, events: asyncio.Queue[SynthesisEvent]
    ) -> None:
        chunk_count = 0
        total_bytes = 0
        try:
            responses = await self._client.streaming_synthesize(
                requests=self._streaming_requests(request)
            )
            async for response in responses:
                if not response.audio_content:
                    continue
                chunk_count += 1
                total_bytes += len(response.audio_content)
                events.put_nowait(AudioChunk(response.audio_content))
        except Exception as e:
            logger.error(
                "Streaming synthesis failed after %d chunks: %s", chunk_count, e
            )
            events.put_nowait(StreamError(str(e) or e.__class__.__name__))
            return
        logger.info(
            "Streamed %d chars -> %d chunks, %d bytes audio",
            len(request.text), chunk_count, total_bytes,
        )
        events.put_nowait(StreamEnd())

    def _streaming_requests(
        self, request: SynthesisRequest
    ) -> AsyncIterator[texttospeech.StreamingSynthesizeRequest]:
        """Build the two-message request stream; ending it half-closes the call."""
        streaming_config = texttospeech.StreamingSynthesizeConfig(
            voice=self._voice(request),
            streaming_audio_config=texttospeech.StreamingAudioConfig(
                audio_encoding=texttospeech.AudioEncoding[request.audio_encoding.value],
                sample_rate_hertz=self._sample_rate_hertz,
            ),
        )
        messages = (
            texttospeech.StreamingSynthesizeRequest(streaming_config=streaming_config),
            texttospeech.StreamingSynthesizeRequest(
                input=texttospeech.StreamingSynthesisInput(text=request.text)
            ),
        )

        async def _generate():
            for message in messages:
                yield message

        return _generate()

    # ------------------------------------------------------------------
    # One-shot synthesis
    # ------------------------------------------------------------------

    async def synthesize(self, request: SynthesisRequest) -> bytes:
        """Synthesize *request* in a single call and return the complete audio."""
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding[request.audio_encoding.value],
            sample_rate_hertz=self._sample_rate_hertz,
        )
        try:
            response = await self._client.synthesize_speech(
                input=texttospeech.SynthesisInput(text=request.text),
                voice=self._voice(request),
                audio_config=audio_config,
            )
        except Exception as e:
            logger.error("TTS synthesis failed: %s", e)
            raise UpstreamSynthesisError(str(e)) from e
        logger.info(
            "TTS synthesized %d chars -> %d bytes audio",
            len(request.text), len(response.audio_content),
        )
        return response.audio_content

    @staticmethod
    def _voice(request: SynthesisRequest) -> texttospeech.VoiceSelectionParams:
        return texttospeech.VoiceSelectionParams(
            language_code=request.language_code,
            name=request.name,
            ssml_gender=texttospeech.SsmlVoiceGender[request.ssml_gender.value],
        )


class UpstreamSynthesisError(Exception):
    """Raised when the Cloud TTS provider rejects or fails a one-shot call."""
