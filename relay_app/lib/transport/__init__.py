"""Transport layer for WebSocket and HTTP connections."""

from .assemblyai_client import StreamingClient, UpstreamEvent, UpstreamEventType
from .proxy_client import PersistenceClient, PersistenceConfig

__all__ = [
    "StreamingClient",
    "UpstreamEvent",
    "UpstreamEventType",
    "PersistenceClient",
    "PersistenceConfig",
]
