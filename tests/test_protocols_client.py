"""Tests for client protocol parsing and outbound messages.

These tests verify:
- Inbound messages parse into the right types
- Malformed frames are rejected
- Outbound messages have the documented shape
"""

import json

import pytest

from relay_app.lib.livetypes import ConnectionStatus, MalformedMessage
from relay_app.lib.protocols.client import (
    ClientMessageType,
    connection_status_message,
    error_message,
    parse_client_message,
    session_ready_message,
    transcript_final_message,
)


class TestParseClientMessage:
    """Tests for parse_client_message function."""

    def test_parse_session_init(self):
        """session.init should carry the session id."""
        msg = parse_client_message('{"type": "session.init", "sessionId": "abc-123"}')

        assert msg.type == ClientMessageType.SESSION_INIT
        assert msg.session_id == "abc-123"
        assert msg.is_init
        assert not msg.is_audio

    def test_parse_audio_append(self):
        """Audio message should keep the encoded payload as-is."""
        msg = parse_client_message(
            '{"type": "input_audio_buffer.append", "audio": "AAABAA=="}'
        )

        assert msg.type == ClientMessageType.AUDIO_APPEND
        assert msg.audio == "AAABAA=="
        assert msg.is_audio

    def test_parse_session_end(self):
        """session.end needs no other fields."""
        msg = parse_client_message('{"type": "session.end"}')

        assert msg.type == ClientMessageType.SESSION_END
        assert msg.is_end

    def test_parse_unknown_type(self):
        """Unrecognized types should map to UNKNOWN, not fail."""
        msg = parse_client_message('{"type": "ping"}')

        assert msg.type == ClientMessageType.UNKNOWN
        assert msg.raw_type == "ping"

    def test_parse_missing_type(self):
        """A message without a type is unknown."""
        msg = parse_client_message('{"sessionId": "abc"}')

        assert msg.type == ClientMessageType.UNKNOWN

    def test_extra_fields_ignored(self):
        """Unexpected fields should not affect parsing."""
        msg = parse_client_message(
            '{"type": "session.init", "sessionId": "s1", "foo": [1, 2]}'
        )

        assert msg.session_id == "s1"

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "",
            "[1, 2, 3]",
            '"session.init"',
            '{"type": 42}',
        ],
    )
    def test_malformed_frames(self, raw):
        """Frames that are not JSON objects with a string type are malformed."""
        with pytest.raises(MalformedMessage):
            parse_client_message(raw)

    @pytest.mark.parametrize(
        "raw",
        [
            '{"type": "session.init"}',
            '{"type": "session.init", "sessionId": ""}',
            '{"type": "session.init", "sessionId": "   "}',
            '{"type": "session.init", "sessionId": 7}',
        ],
    )
    def test_init_requires_session_id(self, raw):
        """session.init without a usable sessionId is malformed."""
        with pytest.raises(MalformedMessage):
            parse_client_message(raw)

    def test_audio_requires_payload(self):
        """Audio message without audio is malformed."""
        with pytest.raises(MalformedMessage):
            parse_client_message('{"type": "input_audio_buffer.append"}')


class TestOutboundMessages:
    """Tests for outbound message builders."""

    def test_session_ready(self):
        """session.ready echoes the session id."""
        assert json.loads(session_ready_message("s1")) == {
            "type": "session.ready",
            "sessionId": "s1",
        }

    def test_transcript_final(self):
        """transcript.final carries the segment and the full transcript."""
        payload = json.loads(transcript_final_message("world", "hello\nworld"))

        assert payload == {
            "type": "transcript.final",
            "text": "world",
            "full_transcript": "hello\nworld",
        }

    def test_connection_status(self):
        """connection.status uses the enum's wire value."""
        payload = json.loads(connection_status_message(ConnectionStatus.ERROR))

        assert payload == {"type": "connection.status", "status": "error"}

    def test_error_with_detail(self):
        """Error message includes the detail when given."""
        payload = json.loads(error_message("Transcription service error", "boom"))

        assert payload["type"] == "error"
        assert payload["message"] == "Transcription service error"
        assert payload["detail"] == "boom"

    def test_error_without_detail(self):
        """Detail key is omitted when there is none."""
        payload = json.loads(error_message("Transcription service error"))

        assert "detail" not in payload
