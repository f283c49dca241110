"""Pydantic models and types for the live transcript relay."""

import dataclasses
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BatchTranscribeRequest(BaseModel):
    """Request to transcribe a pre-recorded audio file."""

    audio_url: str = Field(..., min_length=1, description="Public URL of the recording")
    session_id: str = Field(..., min_length=1, description="Session the transcript belongs to")


class BatchTranscribeResponse(BaseModel):
    """Response for a completed batch transcription."""

    success: bool = True
    transcript_id: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    timestamp: str = ""
    service: str = ""
    version: str = ""
    websocket: str = "enabled"
    upstream_configured: bool = False
    persistence_configured: bool = False


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: str


# Enums
class SessionState(str, Enum):
    """Lifecycle state of one relay session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


class ConnectionStatus(str, Enum):
    """Connection status reported downstream and to the client."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class RecordingStatus(str, Enum):
    """Recording status reported downstream."""

    RECORDING = "recording"
    COMPLETED = "completed"


# Exceptions
class MalformedMessage(ValueError):
    """Client message or audio payload could not be decoded."""

    pass


class ProtocolViolation(Exception):
    """Client message is not valid in the current session state."""

    pass


class UpstreamConnectError(Exception):
    """Error connecting to the transcription provider."""

    pass


class UpstreamRuntimeError(Exception):
    """Error on an established transcription provider connection."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class PersistenceError(Exception):
    """Error delivering a record to the persistence endpoint."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TranscriptionProviderException(Exception):
    """Exception from transcription provider."""

    retcode: int

    def __init__(self, message: str, retcode: int = 500):
        super().__init__(message)
        self.retcode = retcode


@dataclasses.dataclass(frozen=True)
class TranscriptSegment:
    """One recognition result from the transcription provider."""

    text: str
    is_final: bool
    turn_order: Optional[int] = None
