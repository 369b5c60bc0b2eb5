import asyncio

import pytest
from google.cloud import texttospeech_v1 as texttospeech
from httpx import ASGITransport, AsyncClient

from tts_relay.dependencies import (
    get_audio_cache,
    get_chunk_relay,
    get_connection_registry,
    get_tts_service,
)
from tts_relay.main import app
from tts_relay.services.audio_cache import AudioCache
from tts_relay.services.connection import ClientConnection
from tts_relay.services.connection_registry import ConnectionRegistry
from tts_relay.services.relay import ChunkRelay
from tts_relay.services.request_queue import RequestQueue
from tts_relay.services.tts_service import TTSService


class FakeTextToSpeechClient:
    """In-process stand-in for ``TextToSpeechAsyncClient``.

    ``script`` maps input text to the responses for that text: ``bytes``
    items are streamed as audio chunks, an ``Exception`` item is raised at
    that point. Texts without a script stream ``default_chunks``.
    """

    def __init__(self):
        self.default_chunks = [b"\x01\x02", b"\x03\x04"]
        self.script = {}
        self.setup_error = None
        self.gate = None
        self.requests = []
        self.texts = []
        self.active = 0
        self.max_active = 0
        self.file_audio = b"RIFF-complete-audio"
        self.synthesize_error = None
        self.synthesize_calls = []

    @property
    def calls(self):
        return len(self.requests)

    async def streaming_synthesize(self, requests):
        if self.setup_error is not None:
            raise self.setup_error
        sent = [r async for r in requests]
        self.requests.append(sent)
        text = sent[-1].input.text
        self.texts.append(text)
        return self._responses(self.script.get(text, self.default_chunks))

    async def _responses(self, items):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            for item in items:
                await asyncio.sleep(0)
                if isinstance(item, Exception):
                    raise item
                yield texttospeech.StreamingSynthesizeResponse(audio_content=item)
        finally:
            self.active -= 1

    async def synthesize_speech(self, input, voice, audio_config):
        self.synthesize_calls.append((input, voice, audio_config))
        if self.synthesize_error is not None:
            raise self.synthesize_error
        return texttospeech.SynthesizeSpeechResponse(audio_content=self.file_audio)


class RecordingWebSocket:
    """Captures frames the relay sends; ``fail`` simulates a closed socket.

    With ``yield_on_send`` every send gives up control to the event loop
    first, the way a real socket write can.
    """

    def __init__(self, yield_on_send=False):
        self.frames = []
        self.fail = False
        self.yield_on_send = yield_on_send

    async def send_json(self, data):
        if self.yield_on_send:
            await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.frames.append(data)

    async def send_bytes(self, data):
        if self.yield_on_send:
            await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.frames.append(data)

    def controls(self, kind=None):
        return [
            f for f in self.frames
            if isinstance(f, dict) and (kind is None or f["type"] == kind)
        ]


@pytest.fixture
def socket():
    return RecordingWebSocket()


@pytest.fixture
def fake_client():
    return FakeTextToSpeechClient()


@pytest.fixture
def tts_service(fake_client):
    return TTSService(client=fake_client, sample_rate_hertz=24000)


@pytest.fixture
def cache():
    return AudioCache(max_entries=100, max_bytes=1024 * 1024)


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def relay(tts_service, cache):
    return ChunkRelay(tts_service, cache)


@pytest.fixture
def make_connection(relay):
    """Build a connection on a RecordingWebSocket, wired to the shared relay."""

    def _make(framing="envelope", yield_on_send=False):
        connection = ClientConnection(
            RecordingWebSocket(yield_on_send=yield_on_send), framing=framing
        )
        connection.queue = RequestQueue(
            lambda request: relay.process(connection, request), connection.id
        )
        return connection

    return _make


@pytest.fixture
def app_with_services(tts_service, cache, registry, relay):
    """Override the singletons so routes use the fake provider."""
    app.dependency_overrides[get_tts_service] = lambda: tts_service
    app.dependency_overrides[get_audio_cache] = lambda: cache
    app.dependency_overrides[get_connection_registry] = lambda: registry
    app.dependency_overrides[get_chunk_relay] = lambda: relay
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app_with_services):
    transport = ASGITransport(app=app_with_services)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
