"""Shared pytest fixtures: in-process dispatcher servers and a mock admin backend."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import pytest
import pytest_asyncio
from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed


class FakeDispatcher:
    """Dispatcher that answers CONNECT with READY and echoes test actions."""

    def __init__(self, events: list[str] | None = None) -> None:
        self.url = ""
        self.ready_frames = 1
        self.echo: set[str] = {"START_TEST", "FINISH_TEST"}
        self.received: list[dict[str, Any]] = []
        self.close_codes: list[int | None] = []
        self.closed = asyncio.Event()
        self.events = events if events is not None else []

    async def handler(self, ws: ServerConnection) -> None:
        try:
            async for raw in ws:
                frame = json.loads(raw)
                self.received.append(frame)
                message_type = frame["type"]
                if message_type == "CONNECT":
                    for _ in range(self.ready_frames):
                        await ws.send(json.dumps({"type": "READY", "payload": {}}))
                elif message_type in self.echo:
                    await ws.send(json.dumps({"type": message_type, "payload": frame["payload"]}))
        except ConnectionClosed:
            pass
        finally:
            self.close_codes.append(ws.close_code)
            self.events.append("dispatcher:closed")
            self.closed.set()

    def frames(self, message_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.received if frame["type"] == message_type]


class ScriptedServer:
    """Dispatcher stand-in driven by the test: records frames, pushes replies."""

    def __init__(self) -> None:
        self.url = ""
        self.connection: ServerConnection | None = None
        self.connected = asyncio.Event()
        self.received: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def handler(self, ws: ServerConnection) -> None:
        self.connection = ws
        self.connected.set()
        try:
            async for raw in ws:
                await self.received.put(json.loads(raw))
        except ConnectionClosed:
            pass

    async def push(self, frame: dict[str, Any] | str) -> None:
        assert self.connection is not None
        await self.connection.send(frame if isinstance(frame, str) else json.dumps(frame))

    async def next_frame(self, timeout: float = 2.0) -> dict[str, Any]:
        return await asyncio.wait_for(self.received.get(), timeout)


class FakeAdmin:
    """Admin backend served through httpx.MockTransport."""

    def __init__(self, events: list[str] | None = None, token: str | None = "secret-token") -> None:
        self.token = token
        self.requests: list[httpx.Request] = []
        self.actions: list[dict[str, Any]] = []
        # action type -> (status, json body)
        self.responses: dict[str, tuple[int, Any]] = {}
        self.events = events if events is not None else []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/login"):
            headers = {"Authorization": self.token} if self.token else {}
            return httpx.Response(200, headers=headers, json={})

        body = json.loads(request.content)
        self.actions.append(body)
        self.events.append(f"admin:{body['type']}")
        status, data = self.responses.get(body["type"], (200, {"code": 200}))
        return httpx.Response(status, json=data)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def action_types(self) -> list[str]:
        return [action["type"] for action in self.actions]


@asynccontextmanager
async def _serve(handler: Any) -> AsyncIterator[str]:
    async with serve(handler, "127.0.0.1", 0) as server:
        port = next(iter(server.sockets)).getsockname()[1]
        yield f"ws://127.0.0.1:{port}"


@pytest.fixture
def events() -> list[str]:
    """Ordered record of cross-service events (admin actions, dispatcher close)."""
    return []


@pytest_asyncio.fixture
async def dispatcher(events: list[str]) -> AsyncIterator[FakeDispatcher]:
    fake = FakeDispatcher(events)
    async with _serve(fake.handler) as url:
        fake.url = url
        yield fake


@pytest_asyncio.fixture
async def scripted() -> AsyncIterator[ScriptedServer]:
    server = ScriptedServer()
    async with _serve(server.handler) as url:
        server.url = url
        yield server


@pytest.fixture
def admin(events: list[str]) -> FakeAdmin:
    return FakeAdmin(events)


@pytest_asyncio.fixture
async def silent_server() -> AsyncIterator[str]:
    """TCP server that accepts connections but never answers the handshake."""
    writers: list[asyncio.StreamWriter] = []

    async def hold(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.append(writer)
        await reader.read()

    server = await asyncio.start_server(hold, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield f"ws://127.0.0.1:{port}"
    for writer in writers:
        writer.close()
    server.close()
    await server.wait_closed()

