"""Protocol definitions for external services."""

from .assemblyai import (
    AssemblyAIConfig,
    UpstreamMessage,
    UpstreamMessageType,
    get_auth_headers,
    get_streaming_url,
    parse_upstream_message,
    terminate_message,
)
from .client import (
    ClientMessage,
    ClientMessageType,
    connection_status_message,
    error_message,
    parse_client_message,
    session_ready_message,
    transcript_final_message,
)

__all__ = [
    "AssemblyAIConfig",
    "UpstreamMessage",
    "UpstreamMessageType",
    "get_auth_headers",
    "get_streaming_url",
    "parse_upstream_message",
    "terminate_message",
    "ClientMessage",
    "ClientMessageType",
    "connection_status_message",
    "error_message",
    "parse_client_message",
    "session_ready_message",
    "transcript_final_message",
]
