"""Relay session - orchestrates one client connection.

This is the thin orchestration layer that glues together:
- Client protocol (message parsing, outbound messages)
- Upstream transport (AssemblyAI streaming connection)
- Transcript accumulation and persistence throttling
- Persistence transport (proxy HTTP calls)

Inbound client messages are handled one at a time in arrival order.
Upstream events are consumed by a second task, also one at a time.
Every side effect (client sends and persistence calls) goes through one
ordered dispatch queue, so effects never overtake each other.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any, Optional, Protocol

from ..audio.processing import decode_audio_frame
from ..constants import SESSION_SHUTDOWN_TIMEOUT
from ..livetypes import (
    ConnectionStatus,
    MalformedMessage,
    ProtocolViolation,
    RecordingStatus,
    SessionState,
)
from ..protocols.client import (
    ClientMessage,
    connection_status_message,
    error_message,
    parse_client_message,
    session_ready_message,
    transcript_final_message,
)
from ..transport.assemblyai_client import StreamingClient, UpstreamEvent
from .accumulator import TranscriptAccumulator
from .throttle import PersistenceThrottler

logger = logging.getLogger(__name__)

Effect = Callable[[], Awaitable[Any]]


class ClientChannel(Protocol):
    """Protocol for the client duplex connection (e.g. a FastAPI WebSocket)."""

    async def receive(self) -> dict:
        """Receive the next ASGI websocket message."""
        ...

    async def send_text(self, data: str) -> None:
        """Send one text frame."""
        ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        """Close the connection."""
        ...


class PersistenceSink(Protocol):
    """Protocol for the downstream persistence client."""

    async def send(self, session_id: Optional[str], fields: dict[str, Any]) -> bool:
        ...


UpstreamFactory = Callable[[str], StreamingClient]


class RelaySession:
    """State machine for one client connection.

    States: idle -> connecting -> streaming -> closing -> closed, plus failed.

    Usage:
        session = RelaySession(
            channel=websocket,
            persistence=persistence_client,
            upstream_factory=lambda sid: StreamingClient(sid, config),
        )
        await session.run()
    """

    def __init__(
        self,
        channel: ClientChannel,
        persistence: PersistenceSink,
        upstream_factory: UpstreamFactory,
        throttler: Optional[PersistenceThrottler] = None,
        connection_id: str = "",
        shutdown_timeout: float = SESSION_SHUTDOWN_TIMEOUT,
    ):
        """Initialize the session.

        Args:
            channel: Client duplex connection, already accepted
            persistence: Downstream persistence client
            upstream_factory: Builds the upstream client once sessionId is known
            throttler: Persistence throttler (defaults to the configured intervals)
            connection_id: Identifier used in logs before session.init
            shutdown_timeout: Upper bound for draining pending side effects
        """
        self.channel = channel
        self.persistence = persistence
        self.connection_id = connection_id
        self.shutdown_timeout = shutdown_timeout

        self.session_id: Optional[str] = None
        self.state = SessionState.IDLE
        self.accumulator = TranscriptAccumulator()
        self.throttler = throttler or PersistenceThrottler()

        self._upstream_factory = upstream_factory
        self._upstream: Optional[StreamingClient] = None
        self._upstream_task: Optional[asyncio.Task] = None
        self._effects: asyncio.Queue[Optional[Effect]] = asyncio.Queue()
        self._dispatcher: Optional[asyncio.Task] = None
        self._client_connected = True
        self._shutdown_started = False
        self._ended = asyncio.Event()

    @property
    def full_transcript(self) -> str:
        return self.accumulator.full_transcript

    @property
    def upstream(self) -> Optional[StreamingClient]:
        return self._upstream

    @property
    def _tag(self) -> str:
        return f"[Session {self.session_id or 'unknown'}]"

    @property
    def _log_extra(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "connection_id": self.connection_id,
            "state": self.state.value,
        }

    # Lifecycle

    def start(self) -> None:
        """Start the ordered side-effect dispatcher."""
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_loop())

    async def run(self) -> None:
        """Process client messages until the client leaves or ends the session."""
        logger.info("=== New WebSocket connection established ===", extra=self._log_extra)
        self.start()
        try:
            while not self._ended.is_set():
                raw = await self._receive()
                if raw is None:
                    self._client_connected = False
                    logger.info(f"{self._tag} Client disconnected", extra=self._log_extra)
                    break
                await self.handle_message(raw)
        except asyncio.CancelledError:
            logger.info(f"{self._tag} Session task cancelled", extra=self._log_extra)
            raise
        except Exception as e:
            self._client_connected = False
            logger.exception(
                f"{self._tag} Error reading from client",
                exc_info=e,
                extra=self._log_extra,
            )
        finally:
            await self.shutdown()

    async def _receive(self) -> Optional[str]:
        """Next text frame from the client, or None once it disconnected."""
        message = await self.channel.receive()
        if message.get("type") == "websocket.disconnect":
            return None

        text = message.get("text")
        if text is None and message.get("bytes") is not None:
            text = message["bytes"].decode("utf-8", errors="replace")
        return text or ""

    async def shutdown(self) -> None:
        """Tear the session down.

        Closes the upstream connection, flushes the transcript unconditionally,
        records the final status and waits for every pending side effect.
        """
        if self._shutdown_started:
            await self._ended.wait()
            return
        self._shutdown_started = True

        failed = self.state == SessionState.FAILED
        if not failed:
            self._set_state(SessionState.CLOSING)

        try:
            await self._close_upstream()

            if self.session_id:
                logger.info(
                    f"{self._tag} Sending final updates to proxy...",
                    extra=self._log_extra,
                )
                if self.accumulator:
                    self._enqueue_persist(
                        self.throttler.flush_fields(self.full_transcript)
                    )
                self._enqueue_persist(
                    {
                        "connection_status": ConnectionStatus.DISCONNECTED.value,
                        "recording_status": RecordingStatus.COMPLETED.value,
                    }
                )

            await self._drain_effects()
        finally:
            if not failed:
                self._set_state(SessionState.CLOSED)
            self._ended.set()
            logger.info(
                f"{self._tag} Session ended",
                extra={**self._log_extra, "transcript_length": len(self.accumulator)},
            )

    async def _close_upstream(self) -> None:
        if self._upstream is not None:
            try:
                await self._upstream.close()
            except Exception as e:
                logger.exception(
                    f"{self._tag} Error closing transcriber",
                    exc_info=e,
                    extra=self._log_extra,
                )

        # Late turns delivered before termination still belong to the transcript.
        if self._upstream_task is not None and not self._upstream_task.done():
            try:
                await asyncio.wait_for(self._upstream_task, timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"{self._tag} Timeout draining upstream events",
                    extra=self._log_extra,
                )
                self._upstream_task.cancel()
                with suppress(asyncio.CancelledError):
                    await self._upstream_task

    async def _close_client(self) -> None:
        if not self._client_connected:
            return
        self._client_connected = False
        with suppress(Exception):
            await self.channel.close(code=1000)

    def _set_state(self, state: SessionState) -> None:
        if state != self.state:
            logger.debug(
                f"{self._tag} {self.state.value} -> {state.value}",
                extra=self._log_extra,
            )
            self.state = state

    # Client messages

    async def handle_message(self, raw: str) -> None:
        """Handle one raw client message.

        Malformed or out-of-state messages are logged and dropped; they never
        end the session.
        """
        try:
            msg = parse_client_message(raw)
            logger.debug(
                f"{self._tag} Message received: {msg.raw_type}",
                extra=self._log_extra,
            )

            if msg.is_init:
                await self._handle_init(msg)
            elif msg.is_audio:
                await self._handle_audio(msg)
            elif msg.is_end:
                await self._handle_end()
            else:
                logger.info(
                    f"{self._tag} Unknown message type: {msg.raw_type}",
                    extra=self._log_extra,
                )
        except MalformedMessage as e:
            logger.warning(
                f"{self._tag} Dropping malformed message: {e}",
                extra=self._log_extra,
            )
        except ProtocolViolation as e:
            logger.warning(
                f"{self._tag} Ignoring message: {e}",
                extra=self._log_extra,
            )

    async def _handle_init(self, msg: ClientMessage) -> None:
        if self.session_id is not None:
            raise ProtocolViolation(
                f"session.init for {msg.session_id} ignored, sessionId is already set"
            )
        if self.state != SessionState.IDLE:
            raise ProtocolViolation(f"session.init not accepted while {self.state.value}")

        self.session_id = msg.session_id
        self._set_state(SessionState.CONNECTING)
        self.throttler.start()
        logger.info(f"{self._tag} Session initialized", extra=self._log_extra)

        self._enqueue_persist(
            {
                "connection_status": ConnectionStatus.CONNECTED.value,
                "recording_status": RecordingStatus.RECORDING.value,
            }
        )
        self._enqueue_client(session_ready_message(self.session_id))

        self._upstream = self._upstream_factory(self.session_id)
        self._upstream_task = asyncio.create_task(self._consume_upstream_events())
        self._upstream.start()

    async def _handle_audio(self, msg: ClientMessage) -> None:
        if self.state == SessionState.IDLE:
            raise ProtocolViolation("audio received before session.init")
        if self.state in (SessionState.CLOSING, SessionState.CLOSED):
            raise ProtocolViolation(f"audio received while {self.state.value}")
        if self.state != SessionState.STREAMING or self._upstream is None:
            logger.warning(
                f"{self._tag} Transcriber not ready, dropping audio chunk",
                extra=self._log_extra,
            )
            return

        frame = decode_audio_frame(msg.audio)
        # Awaited so frames reach the provider in order, one write at a time.
        await self._upstream.send_audio(frame)

    async def _handle_end(self) -> None:
        logger.info(f"{self._tag} Session end requested", extra=self._log_extra)
        await self.shutdown()
        await self._close_client()

    # Upstream events

    async def _consume_upstream_events(self) -> None:
        """Consume upstream events in order, one at a time."""
        upstream = self._upstream
        if upstream is None:
            return
        try:
            async for event in upstream.events():
                try:
                    await self.handle_upstream_event(event)
                except Exception as e:
                    logger.exception(
                        f"{self._tag} Error handling upstream event",
                        exc_info=e,
                        extra=self._log_extra,
                    )
        except asyncio.CancelledError:
            logger.debug(f"{self._tag} Upstream event consumer cancelled", extra=self._log_extra)

    async def handle_upstream_event(self, event: UpstreamEvent) -> None:
        if event.is_opened:
            if self.state == SessionState.CONNECTING:
                self._set_state(SessionState.STREAMING)
                self._enqueue_client(connection_status_message(ConnectionStatus.CONNECTED))
        elif event.is_turn and event.segment is not None:
            self._handle_segment(event)
        elif event.is_closed:
            logger.info(
                f"{self._tag} AssemblyAI session closed: {event.code} {event.reason}",
                extra=self._log_extra,
            )
            if not event.expected and self.state == SessionState.STREAMING:
                self._set_state(SessionState.CONNECTING)
        elif event.is_error:
            if event.fatal:
                self._fail(event.error)
            else:
                logger.warning(
                    f"{self._tag} AssemblyAI transcriber error: {event.error}",
                    extra=self._log_extra,
                )
                if self.state == SessionState.STREAMING:
                    self._set_state(SessionState.CONNECTING)

    def _handle_segment(self, event: UpstreamEvent) -> None:
        segment = event.segment
        if segment is None or self.state in (SessionState.CLOSED, SessionState.FAILED):
            return

        if not self.accumulator.append(segment):
            logger.debug(
                f"{self._tag} Turn not formatted or no transcript, ignoring",
                extra=self._log_extra,
            )
            return

        logger.info(
            f"{self._tag} Final transcript received",
            extra={**self._log_extra, "transcript_length": len(self.accumulator)},
        )
        full_transcript = self.full_transcript
        self._enqueue_client(transcript_final_message(segment.text, full_transcript))
        for fields in self.throttler.due_records(full_transcript):
            logger.info(
                f"{self._tag} Updating {', '.join(fields)}",
                extra=self._log_extra,
            )
            self._enqueue_persist(fields)

    def _fail(self, error: Optional[Exception]) -> None:
        if self.state in (SessionState.CLOSING, SessionState.CLOSED, SessionState.FAILED):
            return

        logger.error(
            f"{self._tag} Transcription failed: {error}",
            extra=self._log_extra,
        )
        self._set_state(SessionState.FAILED)
        self._enqueue_persist({"connection_status": ConnectionStatus.ERROR.value})
        self._enqueue_client(error_message("Transcription service error", str(error or "")))
        self._enqueue_client(connection_status_message(ConnectionStatus.ERROR))

    # Ordered side effects

    def _enqueue(self, effect: Effect) -> None:
        self._effects.put_nowait(effect)

    def _enqueue_persist(self, fields: dict[str, Any]) -> None:
        session_id = self.session_id

        async def persist() -> None:
            await self.persistence.send(session_id, fields)

        self._enqueue(persist)

    def _enqueue_client(self, text: str) -> None:
        async def send() -> None:
            if not self._client_connected:
                logger.debug(
                    f"{self._tag} Client gone, not sending message",
                    extra=self._log_extra,
                )
                return
            try:
                await self.channel.send_text(text)
            except Exception as e:
                self._client_connected = False
                logger.warning(
                    f"{self._tag} Failed to send message to client: {e}",
                    extra=self._log_extra,
                )

        self._enqueue(send)

    async def _dispatch_loop(self) -> None:
        """Run queued side effects one after another."""
        while True:
            effect = await self._effects.get()
            try:
                if effect is None:
                    return
                await effect()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    f"{self._tag} Error running side effect",
                    exc_info=e,
                    extra=self._log_extra,
                )
            finally:
                self._effects.task_done()

    async def _drain_effects(self) -> None:
        """Wait for all queued side effects, then stop the dispatcher."""
        if self._dispatcher is None:
            self.start()
        self._effects.put_nowait(None)

        dispatcher = self._dispatcher
        if dispatcher is None:
            return
        try:
            await asyncio.wait_for(dispatcher, timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"{self._tag} Timeout draining pending updates",
                extra=self._log_extra,
            )
            dispatcher.cancel()
            with suppress(asyncio.CancelledError):
                await dispatcher
