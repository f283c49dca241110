"""AssemblyAI protocol definitions.

Pure functions for:
- Parsing streaming (v3) messages
- Constructing URLs and headers
- Message type definitions

No I/O, no state - just data transformations.
"""

import json
import os
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Union
from urllib.parse import urlencode

from ..constants import (
    ASSEMBLYAI_API_URL,
    ASSEMBLYAI_STREAMING_URL,
    UPSTREAM_CONNECT_TIMEOUT,
    UPSTREAM_ENCODING,
    UPSTREAM_FORMAT_TURNS,
    UPSTREAM_SAMPLE_RATE,
)
from ..livetypes import TranscriptSegment


class UpstreamMessageType(Enum):
    """Types of messages from the AssemblyAI streaming service."""

    BEGIN = auto()        # Session opened
    TURN = auto()         # Partial or formatted turn transcript
    TERMINATION = auto()  # Provider ended the session
    ERROR = auto()        # Error from service
    UNKNOWN = auto()      # Unrecognized message type


@dataclass(frozen=True)
class UpstreamMessage:
    """Parsed message from the AssemblyAI streaming service.

    Immutable data class representing a single message.
    """

    type: UpstreamMessageType
    text: str = ""
    turn_is_formatted: bool = False
    end_of_turn: bool = False
    turn_order: Optional[int] = None
    provider_session_id: str = ""
    expires_at: Optional[int] = None
    error_message: str = ""
    raw: str = ""

    @property
    def is_begin(self) -> bool:
        return self.type == UpstreamMessageType.BEGIN

    @property
    def is_turn(self) -> bool:
        return self.type == UpstreamMessageType.TURN

    @property
    def is_termination(self) -> bool:
        return self.type == UpstreamMessageType.TERMINATION

    @property
    def is_error(self) -> bool:
        return self.type == UpstreamMessageType.ERROR

    @property
    def has_text(self) -> bool:
        return bool(self.text)

    def to_segment(self) -> TranscriptSegment:
        """Convert a turn message into a transcript segment.

        A turn counts as final only once the provider has formatted it.
        """
        return TranscriptSegment(
            text=self.text,
            is_final=self.turn_is_formatted and self.has_text,
            turn_order=self.turn_order,
        )


@dataclass(frozen=True)
class AssemblyAIConfig:
    """Configuration for the AssemblyAI services.

    Immutable - create a new instance to change values. One instance is
    shared by every session in the process.
    """

    api_key: str
    streaming_url: str = ASSEMBLYAI_STREAMING_URL
    api_url: str = ASSEMBLYAI_API_URL
    sample_rate: int = UPSTREAM_SAMPLE_RATE
    encoding: str = UPSTREAM_ENCODING
    format_turns: bool = UPSTREAM_FORMAT_TURNS
    connect_timeout: float = UPSTREAM_CONNECT_TIMEOUT

    @property
    def url(self) -> str:
        """Construct the streaming WebSocket URL."""
        return get_streaming_url(
            self.streaming_url,
            sample_rate=self.sample_rate,
            encoding=self.encoding,
            format_turns=self.format_turns,
        )

    @property
    def headers(self) -> dict[str, str]:
        """Get authentication headers."""
        return get_auth_headers(self.api_key)

    @classmethod
    def from_env(cls) -> "AssemblyAIConfig":
        """Create config from environment variables."""
        return cls(
            api_key=os.getenv("ASSEMBLYAI_API_KEY", ""),
            streaming_url=os.getenv("ASSEMBLYAI_STREAMING_URL", ASSEMBLYAI_STREAMING_URL),
            api_url=os.getenv("ASSEMBLYAI_API_URL", ASSEMBLYAI_API_URL),
        )

    def is_configured(self) -> bool:
        """Check if all required fields are set."""
        return bool(self.api_key and self.streaming_url)


def get_streaming_url(
    base_url: str,
    sample_rate: int = UPSTREAM_SAMPLE_RATE,
    encoding: str = UPSTREAM_ENCODING,
    format_turns: bool = UPSTREAM_FORMAT_TURNS,
) -> str:
    """Construct the AssemblyAI streaming URL with its fixed session parameters.

    Args:
        base_url: Streaming endpoint without query string
        sample_rate: PCM sample rate in Hz
        encoding: Audio encoding name
        format_turns: Whether the provider should emit formatted turns

    Returns:
        WebSocket URL for the streaming service
    """
    query = urlencode(
        {
            "sample_rate": sample_rate,
            "encoding": encoding,
            "format_turns": "true" if format_turns else "false",
        }
    )
    return f"{base_url}?{query}"


def get_auth_headers(api_key: str) -> dict[str, str]:
    """Construct AssemblyAI authentication headers.

    Args:
        api_key: AssemblyAI API key

    Returns:
        Headers dict for WebSocket and REST calls
    """
    return {"Authorization": api_key}


def terminate_message() -> str:
    """Message asking the provider to end the session gracefully."""
    return json.dumps({"type": "Terminate"})


def parse_upstream_message(raw_message: Union[str, bytes]) -> UpstreamMessage:
    """Parse a raw JSON message from AssemblyAI.

    Pure function - no side effects.

    Args:
        raw_message: Raw JSON string from WebSocket

    Returns:
        Parsed UpstreamMessage

    Examples:
        >>> parse_upstream_message('{"type": "Begin", "id": "abc", "expires_at": 1}')
        UpstreamMessage(type=UpstreamMessageType.BEGIN, provider_session_id='abc', ...)

        >>> parse_upstream_message('{"type": "Turn", "transcript": "Hi.", "turn_is_formatted": true}')
        UpstreamMessage(type=UpstreamMessageType.TURN, text='Hi.', turn_is_formatted=True, ...)

        >>> parse_upstream_message('{"error": "bad input"}')
        UpstreamMessage(type=UpstreamMessageType.ERROR, error_message='bad input', ...)
    """
    if isinstance(raw_message, bytes):
        raw_message = raw_message.decode("utf-8", errors="replace")

    try:
        data = json.loads(raw_message)
    except json.JSONDecodeError:
        return UpstreamMessage(
            type=UpstreamMessageType.ERROR,
            error_message=f"Invalid JSON: {raw_message[:100]}",
            raw=raw_message,
        )

    if not isinstance(data, dict):
        return UpstreamMessage(type=UpstreamMessageType.UNKNOWN, raw=raw_message)

    if "error" in data:
        return UpstreamMessage(
            type=UpstreamMessageType.ERROR,
            error_message=str(data.get("error") or "Unknown error"),
            raw=raw_message,
        )

    msg_type_str = data.get("type", "")

    if msg_type_str == "Begin":
        return UpstreamMessage(
            type=UpstreamMessageType.BEGIN,
            provider_session_id=str(data.get("id", "")),
            expires_at=data.get("expires_at"),
            raw=raw_message,
        )
    elif msg_type_str == "Turn":
        return UpstreamMessage(
            type=UpstreamMessageType.TURN,
            text=data.get("transcript") or "",
            turn_is_formatted=bool(data.get("turn_is_formatted", False)),
            end_of_turn=bool(data.get("end_of_turn", False)),
            turn_order=data.get("turn_order"),
            raw=raw_message,
        )
    elif msg_type_str == "Termination":
        return UpstreamMessage(
            type=UpstreamMessageType.TERMINATION,
            raw=raw_message,
        )
    else:
        return UpstreamMessage(
            type=UpstreamMessageType.UNKNOWN,
            raw=raw_message,
        )
