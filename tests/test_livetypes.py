"""Tests for livetypes module."""

import pytest
from pydantic import ValidationError

from relay_app.lib.livetypes import (
    BatchTranscribeRequest,
    ConnectionStatus,
    ErrorResponse,
    HealthResponse,
    MalformedMessage,
    RecordingStatus,
    SessionState,
    TranscriptionProviderException,
    TranscriptSegment,
    UpstreamRuntimeError,
)


class TestBatchTranscribeRequest:
    """Tests for request validation."""

    def test_valid(self):
        request = BatchTranscribeRequest(audio_url="https://x.test/a.wav", session_id="s1")

        assert request.audio_url == "https://x.test/a.wav"
        assert request.session_id == "s1"

    def test_missing_fields(self):
        with pytest.raises(ValidationError):
            BatchTranscribeRequest(audio_url="https://x.test/a.wav")

    def test_empty_fields(self):
        with pytest.raises(ValidationError):
            BatchTranscribeRequest(audio_url="", session_id="")


class TestResponses:
    def test_health_defaults(self):
        health = HealthResponse(timestamp="t", service="svc", version="2.0.0")

        assert health.status == "healthy"
        assert health.websocket == "enabled"

    def test_error_response(self):
        assert ErrorResponse(error="boom").model_dump() == {
            "success": False,
            "error": "boom",
        }


class TestEnums:
    """Enum values are the wire values."""

    def test_connection_status(self):
        assert ConnectionStatus.CONNECTED.value == "connected"
        assert ConnectionStatus.DISCONNECTED.value == "disconnected"
        assert ConnectionStatus.ERROR.value == "error"

    def test_recording_status(self):
        assert RecordingStatus.RECORDING.value == "recording"
        assert RecordingStatus.COMPLETED.value == "completed"

    def test_session_state_is_str(self):
        assert SessionState.STREAMING == "streaming"


class TestErrors:
    def test_malformed_is_value_error(self):
        assert issubclass(MalformedMessage, ValueError)

    def test_runtime_error_code(self):
        err = UpstreamRuntimeError("closed", code=1011)

        assert err.code == 1011
        assert str(err) == "closed"

    def test_provider_exception_retcode(self):
        assert TranscriptionProviderException("x").retcode == 500
        assert TranscriptionProviderException("x", retcode=504).retcode == 504


class TestTranscriptSegment:
    def test_frozen(self):
        segment = TranscriptSegment(text="hi", is_final=True)

        with pytest.raises(AttributeError):
            segment.text = "bye"
