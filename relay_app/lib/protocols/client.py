"""Client-facing relay protocol definitions.

Pure functions for:
- Parsing inbound client messages
- Building outbound client messages

No I/O, no state - just data transformations.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..livetypes import ConnectionStatus, MalformedMessage


class ClientMessageType(Enum):
    """Types of messages sent by the client application."""

    SESSION_INIT = "session.init"
    AUDIO_APPEND = "input_audio_buffer.append"
    SESSION_END = "session.end"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClientMessage:
    """Parsed message from the client.

    Immutable data class representing a single inbound message.
    """

    type: ClientMessageType
    session_id: str = ""
    audio: str = ""
    raw_type: str = ""

    @property
    def is_init(self) -> bool:
        return self.type == ClientMessageType.SESSION_INIT

    @property
    def is_audio(self) -> bool:
        return self.type == ClientMessageType.AUDIO_APPEND

    @property
    def is_end(self) -> bool:
        return self.type == ClientMessageType.SESSION_END


def parse_client_message(raw_message: str) -> ClientMessage:
    """Parse a raw JSON message from the client.

    Args:
        raw_message: Raw JSON text frame

    Returns:
        Parsed ClientMessage; unrecognized types map to UNKNOWN

    Raises:
        MalformedMessage: If the frame is not a JSON object, or a known
            message type is missing its required field

    Examples:
        >>> parse_client_message('{"type": "session.init", "sessionId": "s1"}')
        ClientMessage(type=ClientMessageType.SESSION_INIT, session_id='s1', ...)

        >>> parse_client_message('{"type": "session.end"}')
        ClientMessage(type=ClientMessageType.SESSION_END, ...)
    """
    try:
        data = json.loads(raw_message)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedMessage(f"Invalid JSON: {str(raw_message)[:100]}") from e

    if not isinstance(data, dict):
        raise MalformedMessage("Client message must be a JSON object")

    msg_type_str = data.get("type", "")
    if not isinstance(msg_type_str, str):
        raise MalformedMessage("Client message type must be a string")

    if msg_type_str == ClientMessageType.SESSION_INIT.value:
        session_id = data.get("sessionId")
        if not isinstance(session_id, str) or not session_id.strip():
            raise MalformedMessage("session.init requires a non-empty sessionId")
        return ClientMessage(
            type=ClientMessageType.SESSION_INIT,
            session_id=session_id,
            raw_type=msg_type_str,
        )
    elif msg_type_str == ClientMessageType.AUDIO_APPEND.value:
        audio = data.get("audio")
        if not isinstance(audio, str) or not audio:
            raise MalformedMessage("input_audio_buffer.append requires audio data")
        return ClientMessage(
            type=ClientMessageType.AUDIO_APPEND,
            audio=audio,
            raw_type=msg_type_str,
        )
    elif msg_type_str == ClientMessageType.SESSION_END.value:
        return ClientMessage(type=ClientMessageType.SESSION_END, raw_type=msg_type_str)
    else:
        return ClientMessage(type=ClientMessageType.UNKNOWN, raw_type=msg_type_str)


def _dump(message: dict[str, Any]) -> str:
    return json.dumps(message)


def session_ready_message(session_id: str) -> str:
    """Acknowledge a session.init."""
    return _dump({"type": "session.ready", "sessionId": session_id})


def transcript_final_message(text: str, full_transcript: str) -> str:
    """Forward one finalized segment along with the transcript so far."""
    return _dump(
        {
            "type": "transcript.final",
            "text": text,
            "full_transcript": full_transcript,
        }
    )


def connection_status_message(status: ConnectionStatus) -> str:
    return _dump({"type": "connection.status", "status": status.value})


def error_message(message: str, detail: Optional[str] = None) -> str:
    payload: dict[str, Any] = {"type": "error", "message": message}
    if detail:
        payload["detail"] = detail
    return _dump(payload)
