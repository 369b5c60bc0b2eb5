import asyncio

import pytest

from tts_relay.models.schemas import AudioCompleteMessage, SsmlGender, SynthesisRequest
from tts_relay.services.connection import (
    BinaryFramer,
    ClientConnection,
    EnvelopeFramer,
    MalformedRequestError,
    decode_binary_frame,
    get_framer,
    parse_client_message,
)


class TestFramers:
    def test_envelope_header_then_payload(self):
        frames = EnvelopeFramer().encode(7, False, b"pcm")
        assert frames == [
            {"type": "audio-chunk", "sequenceNumber": 7, "isLastChunk": False},
            b"pcm",
        ]

    def test_binary_layout(self):
        (frame,) = BinaryFramer().encode(258, True, b"xy")
        assert frame == b"\x02\x01\x00\x00" + b"\x01" + b"xy"

    def test_binary_terminal_chunk_is_header_only(self):
        (frame,) = BinaryFramer().encode(3, True, b"")
        assert len(frame) == 5
        assert decode_binary_frame(frame) == (3, True, b"")

    def test_decode_binary_frame(self):
        (frame,) = BinaryFramer().encode(1, False, b"audio")
        assert decode_binary_frame(frame) == (1, False, b"audio")

    def test_decode_short_frame_raises(self):
        with pytest.raises(ValueError):
            decode_binary_frame(b"\x00\x01")

    def test_unknown_framing(self):
        with pytest.raises(ValueError):
            get_framer("morse")


class TestClientConnection:
    async def test_sequence_numbers_increase_across_calls(self, socket):
        conn = ClientConnection(socket)
        await conn.send_chunk(b"a", is_last=False)
        await conn.send_chunk(b"", is_last=True)
        await conn.send_chunk(b"b", is_last=True)
        numbers = [f["sequenceNumber"] for f in socket.controls("audio-chunk")]
        assert numbers == [0, 1, 2]
        assert conn.next_sequence_number == 3

    async def test_new_connection_starts_at_zero(self, socket):
        first = ClientConnection(socket)
        await first.send_chunk(b"a", is_last=True)
        second = ClientConnection(socket)
        assert second.next_sequence_number == 0
        assert first.id != second.id

    async def test_send_failure_is_swallowed_and_marks_closed(self, socket):
        socket.fail = True
        conn = ClientConnection(socket)
        assert await conn.send_control(AudioCompleteMessage()) is False
        assert conn.closed is True

    async def test_sends_after_close_are_dropped(self, socket):
        conn = ClientConnection(socket, framing="binary")
        conn.close()
        assert await conn.send_chunk(b"a", is_last=True) is False
        assert socket.frames == []

    def test_close_without_queue(self, socket):
        conn = ClientConnection(socket)
        assert conn.close() == 0


class TestParseClientMessage:
    def test_full_request(self):
        request = parse_client_message(
            '{"type": "synthesize-streaming", "text": "hello", "languageCode": "en-US",'
            ' "ssmlGender": "MALE", "name": "en-US-Standard-B", "audioEncoding": "MP3"}'
        )
        assert isinstance(request, SynthesisRequest)
        assert request.language_code == "en-US"
        assert request.ssml_gender == SsmlGender.MALE

    def test_defaults_applied(self):
        request = parse_client_message('{"type": "synthesize-streaming", "text": "hi"}')
        assert request.language_code == "en-IN"
        assert request.name == "en-IN-Journey-O"

    def test_bytes_payload_decoded(self):
        request = parse_client_message(b'{"type": "synthesize-streaming", "text": "hi"}')
        assert request.text == "hi"

    def test_other_types_ignored(self):
        assert parse_client_message('{"type": "ping"}') is None

    def test_invalid_json(self):
        with pytest.raises(MalformedRequestError):
            parse_client_message("{not json")

    def test_non_object(self):
        with pytest.raises(MalformedRequestError):
            parse_client_message("[1, 2, 3]")

    def test_missing_type_ignored(self):
        assert parse_client_message('{"text": "hello"}') is None

    def test_non_string_type(self):
        with pytest.raises(MalformedRequestError):
            parse_client_message('{"type": 5}')

    def test_missing_text(self):
        with pytest.raises(MalformedRequestError, match="text"):
            parse_client_message('{"type": "synthesize-streaming"}')

    def test_bad_gender(self):
        with pytest.raises(MalformedRequestError, match="ssmlGender"):
            parse_client_message(
                '{"type": "synthesize-streaming", "text": "hi", "ssmlGender": "ROBOT"}'
            )

    def test_invalid_utf8(self):
        with pytest.raises(MalformedRequestError):
            parse_client_message(b"\xff\xfe")


class TestSendOrdering:
    async def test_control_message_waits_for_whole_envelope_chunk(self, socket):
        socket.yield_on_send = True
        conn = ClientConnection(socket)
        await asyncio.gather(
            conn.send_chunk(b"pcm", is_last=False),
            conn.send_control(AudioCompleteMessage()),
        )
        assert socket.frames == [
            {"type": "audio-chunk", "sequenceNumber": 0, "isLastChunk": False},
            b"pcm",
            {"type": "audio-complete"},
        ]
