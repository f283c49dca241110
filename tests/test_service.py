"""Tests for the Application service."""

import asyncio
import json
from contextlib import suppress
from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest

from relay_app.lib.protocols.assemblyai import AssemblyAIConfig
from relay_app.lib.service import Application
from relay_app.lib.transport.assemblyai_client import StreamingClient
from relay_app.lib.transport.proxy_client import PersistenceConfig


class FakeChannel:
    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []

    def push(self, payload: dict) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "text": json.dumps(payload)})

    def disconnect(self) -> None:
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": 1001})

    async def receive(self) -> dict:
        return await self.incoming.get()

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        pass


class FakePersistence:
    def __init__(self):
        self.records: list[tuple[Optional[str], dict[str, Any]]] = []
        self.close = AsyncMock()

    async def send(self, session_id: Optional[str], fields: dict[str, Any]) -> bool:
        self.records.append((session_id, dict(fields)))
        return True


class FakeUpstream:
    def __init__(self, session_id: str):
        self.session_id = session_id
        self._events: asyncio.Queue = asyncio.Queue()

    def start(self) -> None:
        pass

    async def events(self):
        while (event := await self._events.get()) is not None:
            yield event

    async def send_audio(self, frame: bytes) -> bool:
        return True

    async def close(self) -> None:
        self._events.put_nowait(None)


def make_app() -> Application:
    app = Application(
        upstream_config=AssemblyAIConfig(api_key="test-key"),
        persistence_config=PersistenceConfig(url="https://proxy.test", secret="s"),
        persistence=FakePersistence(),
    )
    app.create_upstream = FakeUpstream
    return app


async def settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


class TestApplication:
    """Tests for session bookkeeping."""

    def test_create_upstream_uses_shared_config(self):
        config = AssemblyAIConfig(api_key="test-key")
        app = Application(
            upstream_config=config,
            persistence_config=PersistenceConfig(url="https://proxy.test", secret="s"),
        )

        client = app.create_upstream("s1")

        assert isinstance(client, StreamingClient)
        assert client.session_id == "s1"
        assert client.config is config

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self):
        """Each connection gets its own session and connection id."""
        app = make_app()

        first = app.create_session(FakeChannel())
        second = app.create_session(FakeChannel())

        assert first is not second
        assert first.connection_id != second.connection_id
        assert first.accumulator is not second.accumulator

    @pytest.mark.asyncio
    async def test_open_session_lifecycle(self):
        """Sessions are tracked while running and removed afterwards."""
        app = make_app()
        channel = FakeChannel()
        channel.push({"type": "session.init", "sessionId": "s1"})

        task = asyncio.create_task(app.open_session(channel))
        await settle()

        assert app.get_active_sessions() == ["s1"]

        channel.disconnect()
        await asyncio.wait_for(task, 2)

        assert app.get_active_sessions() == []
        assert app.sessions == {}
        assert app.persistence.records[-1] == (
            "s1",
            {"connection_status": "disconnected", "recording_status": "completed"},
        )

    @pytest.mark.asyncio
    async def test_uninitialized_session_not_listed(self):
        app = make_app()
        channel = FakeChannel()

        task = asyncio.create_task(app.open_session(channel))
        await settle()

        assert len(app.sessions) == 1
        assert app.get_active_sessions() == []

        channel.disconnect()
        await asyncio.wait_for(task, 2)

    @pytest.mark.asyncio
    async def test_shutdown_closes_sessions(self):
        """Shutdown tears down every live session and the proxy client."""
        app = make_app()
        channels = [FakeChannel(), FakeChannel()]
        channels[0].push({"type": "session.init", "sessionId": "a"})
        channels[1].push({"type": "session.init", "sessionId": "b"})
        tasks = [asyncio.create_task(app.open_session(c)) for c in channels]
        await settle()

        await asyncio.wait_for(app.shutdown(), 5)
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await asyncio.wait_for(task, 2)

        finished = {
            session_id
            for session_id, fields in app.persistence.records
            if fields.get("connection_status") == "disconnected"
        }
        assert finished == {"a", "b"}
        assert app.sessions == {}
        app.persistence.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_runs_sessions_together(self):
        """Session teardowns overlap instead of running one after another."""
        app = make_app()
        started: list[str] = []
        both_started = asyncio.Event()

        class SlowSession:
            def __init__(self, session_id: str):
                self.session_id = session_id

            async def shutdown(self) -> None:
                started.append(self.session_id)
                if len(started) == 2:
                    both_started.set()
                await both_started.wait()

        app.sessions = {"c1": SlowSession("a"), "c2": SlowSession("b")}

        await asyncio.wait_for(app.shutdown(), 2)

        assert sorted(started) == ["a", "b"]
        app.persistence.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_survives_failing_session(self):
        app = make_app()
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()

        class StubSession:
            def __init__(self, session_id: str, shutdown):
                self.session_id = session_id
                self.shutdown = shutdown

        app.sessions = {"c1": StubSession("a", failing), "c2": StubSession("b", healthy)}

        await asyncio.wait_for(app.shutdown(), 2)

        failing.assert_awaited_once()
        healthy.assert_awaited_once()
        app.persistence.close.assert_awaited_once()
