"""Application service for managing relay sessions."""

import asyncio
import logging
import uuid
from typing import Optional

from .constants import (
    LIVE_PERSIST_INTERVAL,
    RECORDING_PERSIST_INTERVAL,
    SESSION_SHUTDOWN_TIMEOUT,
)
from .protocols.assemblyai import AssemblyAIConfig
from .transcription.session import ClientChannel, RelaySession
from .transcription.throttle import PersistenceThrottler
from .transport.assemblyai_client import StreamingClient
from .transport.proxy_client import PersistenceClient, PersistenceConfig

logger = logging.getLogger(__name__)


class Application:
    """Application service that owns one RelaySession per client connection."""

    def __init__(
        self,
        upstream_config: Optional[AssemblyAIConfig] = None,
        persistence_config: Optional[PersistenceConfig] = None,
        persistence: Optional[PersistenceClient] = None,
    ) -> None:
        """Initialize the application.

        Args:
            upstream_config: Shared provider configuration (defaults to env)
            persistence_config: Proxy configuration (defaults to env)
            persistence: Pre-built persistence client, mainly for tests
        """
        self.upstream_config = upstream_config or AssemblyAIConfig.from_env()
        self.persistence_config = persistence_config or PersistenceConfig.from_env()
        self.persistence = persistence or PersistenceClient(self.persistence_config)
        self.sessions: dict[str, RelaySession] = {}
        self.session_lock = asyncio.Lock()
        self._tasks: dict[str, asyncio.Task] = {}

    def create_upstream(self, session_id: str) -> StreamingClient:
        """Build the upstream client for one session from the shared config."""
        return StreamingClient(session_id=session_id, config=self.upstream_config)

    def create_session(self, channel: ClientChannel) -> RelaySession:
        return RelaySession(
            channel=channel,
            persistence=self.persistence,
            upstream_factory=self.create_upstream,
            throttler=PersistenceThrottler(
                live_interval=LIVE_PERSIST_INTERVAL,
                recording_interval=RECORDING_PERSIST_INTERVAL,
            ),
            connection_id=uuid.uuid4().hex[:12],
        )

    async def open_session(self, channel: ClientChannel) -> None:
        """Run a relay session for an accepted client connection.

        Args:
            channel: Accepted client WebSocket
        """
        session = self.create_session(channel)
        async with self.session_lock:
            self.sessions[session.connection_id] = session
            current = asyncio.current_task()
            if current is not None:
                self._tasks[session.connection_id] = current

        try:
            await session.run()
        finally:
            async with self.session_lock:
                self.sessions.pop(session.connection_id, None)
                self._tasks.pop(session.connection_id, None)
            logger.debug(
                "Removed session",
                extra={
                    "connection_id": session.connection_id,
                    "session_id": session.session_id,
                },
            )

    async def _shutdown_session(self, session: RelaySession) -> None:
        try:
            await asyncio.wait_for(session.shutdown(), timeout=SESSION_SHUTDOWN_TIMEOUT * 2)
        except asyncio.TimeoutError:
            logger.warning(
                "Timeout closing session during shutdown",
                extra={"session_id": session.session_id},
            )
        except Exception as e:
            logger.exception(
                "Error closing session during shutdown",
                exc_info=e,
                extra={"session_id": session.session_id},
            )

    async def shutdown(self) -> None:
        """Shutdown all sessions."""
        logger.info("Shutting down application")
        async with self.session_lock:
            sessions = list(self.sessions.values())
            tasks = list(self._tasks.values())

        await asyncio.gather(
            *(self._shutdown_session(session) for session in sessions),
            return_exceptions=True,
        )

        # Handlers still blocked on client reads
        for task in tasks:
            if not task.done():
                task.cancel()

        await self.persistence.close()
        logger.info("Application shutdown complete")

    def get_active_sessions(self) -> list[str]:
        """Get list of initialized session IDs.

        Returns:
            Session IDs of connections that sent session.init
        """
        return [
            session.session_id
            for session in self.sessions.values()
            if session.session_id is not None
        ]
