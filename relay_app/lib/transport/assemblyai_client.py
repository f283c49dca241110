"""AssemblyAI streaming WebSocket client.

This module owns the duplex connection to the transcription provider for one
session. It separates I/O concerns from the relay logic: provider messages
are parsed with the pure functions in ``protocols.assemblyai`` and surfaced
as ``UpstreamEvent`` objects on an ordered event channel.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum, auto
from typing import AsyncGenerator, Optional

import websockets
from websockets import ClientConnection

from ..constants import (
    MAX_RECONNECT_ATTEMPTS,
    RETRY_BACKOFF_BASE,
    UPSTREAM_CLOSE_TIMEOUT,
)
from ..livetypes import (
    TranscriptSegment,
    UpstreamConnectError,
    UpstreamRuntimeError,
)
from ..protocols.assemblyai import (
    AssemblyAIConfig,
    parse_upstream_message,
    terminate_message,
)

logger = logging.getLogger(__name__)


class UpstreamEventType(Enum):
    """Events surfaced to the session relay."""

    OPENED = auto()
    TURN = auto()
    CLOSED = auto()
    ERROR = auto()


@dataclass(frozen=True)
class UpstreamEvent:
    """One event from the upstream connection, in provider order."""

    type: UpstreamEventType
    segment: Optional[TranscriptSegment] = None
    code: Optional[int] = None
    reason: str = ""
    expected: bool = True
    error: Optional[Exception] = None
    fatal: bool = False

    @property
    def is_opened(self) -> bool:
        return self.type == UpstreamEventType.OPENED

    @property
    def is_turn(self) -> bool:
        return self.type == UpstreamEventType.TURN

    @property
    def is_closed(self) -> bool:
        return self.type == UpstreamEventType.CLOSED

    @property
    def is_error(self) -> bool:
        return self.type == UpstreamEventType.ERROR

    @classmethod
    def opened(cls) -> "UpstreamEvent":
        return cls(type=UpstreamEventType.OPENED)

    @classmethod
    def turn(cls, segment: TranscriptSegment) -> "UpstreamEvent":
        return cls(type=UpstreamEventType.TURN, segment=segment)

    @classmethod
    def closed(
        cls, code: Optional[int], reason: str, expected: bool = True
    ) -> "UpstreamEvent":
        return cls(
            type=UpstreamEventType.CLOSED,
            code=code,
            reason=reason,
            expected=expected,
        )

    @classmethod
    def failure(cls, error: Exception, fatal: bool = False) -> "UpstreamEvent":
        return cls(type=UpstreamEventType.ERROR, error=error, fatal=fatal)


class StreamingClient:
    """Client for AssemblyAI's universal streaming service.

    Handles the WebSocket lifecycle, audio forwarding, event delivery and
    bounded reconnection for one session.

    Usage:
        client = StreamingClient("session-1", AssemblyAIConfig.from_env())
        client.start()

        async for event in client.events():
            if event.is_opened:
                await client.send_audio(frame)
            elif event.is_turn:
                print(event.segment.text)

        await client.close()
    """

    # Default timeouts
    PING_INTERVAL = 20
    PING_TIMEOUT = 20

    def __init__(
        self,
        session_id: str,
        config: AssemblyAIConfig,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        backoff_base: float = RETRY_BACKOFF_BASE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the client.

        Args:
            session_id: Relay session this connection belongs to
            config: Shared, immutable provider configuration
            max_reconnect_attempts: Reconnection attempts before giving up
            backoff_base: Base of the exponential reconnection delay
            sleep: Sleep function used between reconnection attempts
        """
        self.session_id = session_id
        self.config = config
        self.max_reconnect_attempts = max_reconnect_attempts
        self.backoff_base = backoff_base
        self.reconnect_attempts = 0

        self._sleep = sleep
        self._ws: Optional[ClientConnection] = None
        self._ready = False
        self._closing = False
        self._terminated = False
        self._reconnecting = False
        self._events: asyncio.Queue[Optional[UpstreamEvent]] = asyncio.Queue()
        self._supervisor: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        """True once the provider has opened the session."""
        return self._ready and self._ws is not None and not self._closing

    @property
    def is_running(self) -> bool:
        return self._supervisor is not None and not self._supervisor.done()

    async def connect(self) -> None:
        """Open the WebSocket to the provider.

        Raises:
            UpstreamConnectError: If credentials are missing, the handshake
                is rejected or the connection times out
        """
        if not self.config.is_configured():
            raise UpstreamConnectError(
                "AssemblyAI credentials not configured. Set ASSEMBLYAI_API_KEY."
            )

        try:
            logger.info(
                f"[Session {self.session_id}] Connecting to AssemblyAI...",
                extra={"session_id": self.session_id},
            )
            self._ws = await asyncio.wait_for(
                websockets.connect(
                    self.config.url,
                    additional_headers=self.config.headers,
                    open_timeout=self.config.connect_timeout,
                    ping_interval=self.PING_INTERVAL,
                    ping_timeout=self.PING_TIMEOUT,
                    max_size=None,
                ),
                timeout=self.config.connect_timeout,
            )
            self._terminated = False
            logger.info(
                f"[Session {self.session_id}] Connected to AssemblyAI streaming service",
                extra={"session_id": self.session_id},
            )
        except asyncio.TimeoutError:
            raise UpstreamConnectError(
                f"Timeout connecting to AssemblyAI after {self.config.connect_timeout}s"
            )
        except Exception as e:
            raise UpstreamConnectError(f"Failed to connect to AssemblyAI: {e}") from e

    def start(self) -> None:
        """Connect and pump provider events in the background."""
        if self.is_running:
            logger.warning(
                f"[Session {self.session_id}] Streaming client already running",
                extra={"session_id": self.session_id},
            )
            return
        self._closing = False
        self._supervisor = asyncio.create_task(self._run())

    async def events(self) -> AsyncGenerator[UpstreamEvent, None]:
        """Async generator that yields events in the order they occurred.

        Ends after the connection is closed for good.
        """
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def send_audio(self, frame: bytes) -> bool:
        """Forward one raw audio frame.

        Frames arriving while the connection is not ready are dropped, never
        queued. The write is awaited, so a caller sending frames in sequence
        keeps at most one write in flight.

        Returns:
            True if the frame was written to the connection
        """
        ws = self._ws
        if not self.is_ready or ws is None:
            logger.warning(
                f"[Session {self.session_id}] Transcriber not ready, dropping audio chunk",
                extra={"session_id": self.session_id},
            )
            return False

        try:
            await ws.send(frame)
        except websockets.ConnectionClosed:
            self._ready = False
            logger.warning(
                f"[Session {self.session_id}] AssemblyAI connection closed during audio write",
                extra={"session_id": self.session_id},
            )
            return False
        except Exception as e:
            logger.error(
                f"[Session {self.session_id}] Error sending audio: {e}",
                extra={"session_id": self.session_id},
            )
            return False

        logger.debug(
            f"[Session {self.session_id}] Sent {len(frame)} bytes of audio",
            extra={"session_id": self.session_id},
        )
        return True
    async def _emit(self, event: UpstreamEvent) -> None:
        await self._events.put(event)

    async def _run(self) -> None:
        """Own the connection until it is closed or reconnection gives up."""
        try:
            try:
                await self.connect()
            except UpstreamConnectError as e:
                logger.error(
                    f"[Session {self.session_id}] Failed to initialize transcriber: {e}",
                    extra={"session_id": self.session_id},
                )
                await self._emit(UpstreamEvent.failure(e, fatal=True))
                return

            while True:
                error = await self._receive_loop()
                if error is None:
                    return

                if not await self._reconnect():
                    if self._closing:
                        return
                    await self._emit(
                        UpstreamEvent.failure(
                            UpstreamRuntimeError(
                                f"Gave up after {self.max_reconnect_attempts} reconnection attempts: {error}",
                                code=error.code,
                            ),
                            fatal=True,
                        )
                    )
                    return
        except asyncio.CancelledError:
            logger.debug(
                f"[Session {self.session_id}] Streaming client task cancelled",
                extra={"session_id": self.session_id},
            )
        finally:
            self._ready = False
            self._events.put_nowait(None)

    async def _receive_loop(self) -> Optional[UpstreamRuntimeError]:
        """Pump provider messages into the event channel.

        Returns:
            None when the connection ended as expected, otherwise the error
            that should trigger a reconnection
        """
        ws = self._ws
        if ws is None:
            return UpstreamRuntimeError("No upstream connection")

        failure: Optional[UpstreamRuntimeError] = None
        try:
            async for raw_message in ws:
                msg = parse_upstream_message(raw_message)

                if msg.is_begin:
                    self._ready = True
                    # Only a provider-confirmed session counts as a successful reconnect.
                    self.reconnect_attempts = 0
                    logger.info(
                        f"[Session {self.session_id}] AssemblyAI session opened",
                        extra={
                            "session_id": self.session_id,
                            "provider_session_id": msg.provider_session_id,
                            "expires_at": msg.expires_at,
                        },
                    )
                    await self._emit(UpstreamEvent.opened())
                elif msg.is_turn:
                    await self._emit(UpstreamEvent.turn(msg.to_segment()))
                elif msg.is_termination:
                    self._terminated = True
                    logger.info(
                        f"[Session {self.session_id}] AssemblyAI session terminated",
                        extra={"session_id": self.session_id},
                    )
                elif msg.is_error:
                    failure = UpstreamRuntimeError(msg.error_message)
                    logger.error(
                        f"[Session {self.session_id}] AssemblyAI transcriber error: {msg.error_message}",
                        extra={"session_id": self.session_id},
                    )
                    await self._emit(UpstreamEvent.failure(failure))
                else:
                    logger.debug(
                        f"[Session {self.session_id}] Ignoring AssemblyAI message: {msg.raw[:200]}",
                        extra={"session_id": self.session_id},
                    )
        except websockets.ConnectionClosed as e:
            failure = UpstreamRuntimeError(
                f"Connection lost: {e}", code=e.rcvd.code if e.rcvd else None
            )
        except Exception as e:
            failure = UpstreamRuntimeError(f"Error receiving AssemblyAI messages: {e}")
            logger.error(
                f"[Session {self.session_id}] {failure}",
                extra={"session_id": self.session_id},
            )
        finally:
            self._ready = False

        expected = self._closing or (self._terminated and failure is None)
        code = ws.close_code
        reason = ws.close_reason or ""
        logger.info(
            f"[Session {self.session_id}] AssemblyAI session closed: {code} {reason}",
            extra={"session_id": self.session_id, "expected": expected},
        )
        await self._emit(UpstreamEvent.closed(code, reason, expected=expected))

        if expected:
            return None
        if failure is None:
            failure = UpstreamRuntimeError(
                f"Unexpected close: {code} {reason}".strip(), code=code
            )
        if failure.code is None:
            failure.code = code
        return failure

    async def _reconnect(self) -> bool:
        """Reconnect with exponential backoff.

        Returns:
            True once the handshake succeeded again, False when attempts
            are exhausted or the client is closing. The attempt counter is
            only reset when the provider opens the session.
        """
        self._reconnecting = True
        try:
            while self.reconnect_attempts < self.max_reconnect_attempts:
                if self._closing:
                    return False

                delay = self.backoff_base ** self.reconnect_attempts
                self.reconnect_attempts += 1
                logger.warning(
                    f"[Session {self.session_id}] Reconnecting to AssemblyAI in {delay}s "
                    f"(attempt {self.reconnect_attempts}/{self.max_reconnect_attempts})",
                    extra={"session_id": self.session_id},
                )
                await self._sleep(delay)
                if self._closing:
                    return False

                try:
                    await self.connect()
                except UpstreamConnectError as e:
                    logger.error(
                        f"[Session {self.session_id}] Reconnection attempt {self.reconnect_attempts} failed: {e}",
                        extra={"session_id": self.session_id},
                    )
                    continue

                return True
        finally:
            self._reconnecting = False

        logger.error(
            f"[Session {self.session_id}] Reconnection attempts exhausted",
            extra={"session_id": self.session_id},
        )
        return False

    async def close(self) -> None:
        """Terminate the provider session and stop any reconnection loop."""
        if self._closing and not self.is_running:
            return

        logger.info(
            f"[Session {self.session_id}] Closing transcriber connection...",
            extra={"session_id": self.session_id},
        )
        self._closing = True
        self._ready = False

        ws = self._ws
        if ws is not None:
            with suppress(Exception):
                await ws.send(terminate_message())

        # Let the provider deliver its last turns and Termination before the
        # socket goes away. A pending backoff sleep or handshake is cancelled.
        if self._supervisor and not self._supervisor.done():
            if self._reconnecting or self._ws is None:
                self._supervisor.cancel()
            try:
                await asyncio.wait_for(
                    asyncio.shield(self._supervisor), timeout=UPSTREAM_CLOSE_TIMEOUT
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"[Session {self.session_id}] Timeout waiting for AssemblyAI termination",
                    extra={"session_id": self.session_id},
                )
                self._supervisor.cancel()
                with suppress(asyncio.CancelledError):
                    await self._supervisor
            except asyncio.CancelledError:
                if not self._supervisor.cancelled():
                    raise

        ws = self._ws
        if ws is not None:
            try:
                await asyncio.wait_for(ws.close(), timeout=UPSTREAM_CLOSE_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning(
                    f"[Session {self.session_id}] Timeout closing AssemblyAI connection",
                    extra={"session_id": self.session_id},
                )
            except Exception as e:
                logger.error(
                    f"[Session {self.session_id}] Error closing transcriber: {e}",
                    extra={"session_id": self.session_id},
                )

        self._ws = None
        logger.info(
            f"[Session {self.session_id}] Transcriber closed",
            extra={"session_id": self.session_id},
        )
