"""Request/response correlation over the dispatcher WebSocket.

The dispatcher protocol has no request ids: a reply is recognised by carrying
the same ``type`` as the request. MessageCorrelator runs one background reader
per socket and hands every decoded frame to the oldest registered listener
whose predicate matches it. Frames nobody waits for are dropped.

Listeners must be registered before the frame that provokes the reply is
written, otherwise a fast reply can be consumed before anyone waits for it.
send() and the dispatcher client's readiness wait both follow that order.

Usage:
    correlator = MessageCorrelator(ws, client_id)
    correlator.start()
    payload = await correlator.send("START_TEST", {"sessionId": sid, "testName": name})
    await correlator.await_message("READY", timeout=60000)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from autotest_agent.core.errors import DispatcherConnectionClosed, TimedOut

logger = logging.getLogger(__name__)

# Sender role announced in the "from" block of every frame
CLIENT_ROLE = "autotest-agent"

# Default wait for a correlated reply, in milliseconds
DEFAULT_MESSAGE_TIMEOUT: int = 10000

FrameMatcher = Callable[[dict[str, Any]], bool]


def build_frame(message_type: str, client_id: str, payload: Any = None) -> str:
    """Serialize an outbound dispatcher frame."""
    return json.dumps(
        {
            "type": message_type,
            "from": {"id": client_id, "type": CLIENT_ROLE},
            "payload": {} if payload is None else payload,
        },
        separators=(",", ":"),
    )


def match_type(message_type: str) -> FrameMatcher:
    """Frame predicate accepting frames whose ``type`` equals message_type."""
    return lambda frame: frame.get("type") == message_type


@dataclass
class _Listener:
    """A single-shot wait for one inbound frame."""

    label: str
    matches: FrameMatcher
    future: asyncio.Future[Any] = field(
        default_factory=lambda: asyncio.get_running_loop().create_future()
    )


class MessageCorrelator:
    """Turns the event-driven socket into awaitable request/response calls.

    Attributes:
        client_id: Id announced in the "from" block of every outbound frame.
    """

    def __init__(self, ws: ClientConnection, client_id: str) -> None:
        self._ws = ws
        self.client_id = client_id
        self._listeners: list[_Listener] = []
        self._reader: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Start the background reader. Call once, right after the socket opens."""
        if self._reader is None:
            self._reader = asyncio.create_task(self._listen())

    @property
    def is_running(self) -> bool:
        return self._reader is not None and not self._reader.done()

    @property
    def pending(self) -> int:
        """Number of listeners still waiting for a frame."""
        return sum(1 for listener in self._listeners if not listener.future.done())

    async def _listen(self) -> None:
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except ConnectionClosed as e:
            logger.debug("Dispatcher connection closed: %s", e)
        except Exception:
            logger.exception("Dispatcher listener error")
        finally:
            self._fail_pending(DispatcherConnectionClosed("dispatcher connection closed"))

    def _dispatch(self, raw: str | bytes) -> None:
        """Route one inbound frame to the oldest matching listener."""
        logger.debug("received message %r", raw)
        try:
            frame = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("failed to parse message %r: %s", raw, e)
            return
        if not isinstance(frame, dict):
            logger.error("failed to process message %r: expected an object", raw)
            return

        for listener in self._listeners:
            if listener.future.done():
                continue
            try:
                matched = listener.matches(frame)
            except Exception:
                # A predicate that cannot handle the frame treats it as a non-match
                logger.exception('"%s" - failed to match message %r', listener.label, raw)
                continue
            if matched:
                self._listeners.remove(listener)
                listener.future.set_result(frame.get("payload"))
                logger.debug('"%s" - response %r', listener.label, frame.get("payload"))
                return

        logger.debug('no listener for "%s" message, dropped', frame.get("type"))

    def _fail_pending(self, error: Exception) -> None:
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            if not listener.future.done():
                listener.future.set_exception(error)

    def _discard(self, listener: _Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        if not listener.future.done():
            listener.future.cancel()

    def expect(self, matches: FrameMatcher, label: str) -> _Listener:
        """Register a listener for the first frame satisfying matches.

        The listener is live immediately; pass it to wait() to collect the
        frame's payload.
        """
        if not self.is_running:
            raise DispatcherConnectionClosed(f'cannot wait for "{label}": connection closed')
        listener = _Listener(label=label, matches=matches)
        self._listeners.append(listener)
        return listener

    def listen(self, message_type: str) -> _Listener:
        """Register a listener for the first frame of the given type."""
        return self.expect(match_type(message_type), message_type)

    async def wait(self, listener: _Listener, timeout: float = DEFAULT_MESSAGE_TIMEOUT) -> Any:
        """Wait for a registered listener to fire.

        Args:
            listener: Listener returned by expect() or listen().
            timeout: Deadline in milliseconds.

        Returns:
            The ``payload`` field of the matching frame.

        Raises:
            TimedOut: If no matching frame arrives in time. The listener is
                removed, so a late frame is dropped.
            DispatcherConnectionClosed: If the socket closes first.
        """
        try:
            return await asyncio.wait_for(listener.future, timeout / 1000)
        except TimeoutError:
            raise TimedOut(listener.label, timeout) from None
        finally:
            self._discard(listener)

    async def await_message(
        self, message_type: str, timeout: float = DEFAULT_MESSAGE_TIMEOUT
    ) -> Any:
        """Wait for the first inbound frame of the given type."""
        return await self.wait(self.listen(message_type), timeout)

    async def send(
        self,
        message_type: str,
        payload: Any = None,
        timeout: float = DEFAULT_MESSAGE_TIMEOUT,
        await_response: bool = True,
    ) -> Any:
        """Send a frame and optionally wait for the reply of the same type.

        Args:
            message_type: Frame type, also used to recognise the reply.
            payload: JSON-serializable payload. Defaults to an empty object.
            timeout: Reply deadline in milliseconds.
            await_response: If False, return once the frame is written.

        Returns:
            The reply payload, or None when not awaiting a response.

        Raises:
            TimedOut: If awaiting and no reply arrives in time.
            DispatcherConnectionClosed: If the socket is closed.
        """
        listener = self.listen(message_type) if await_response else None

        logger.debug('"%s" - send', message_type)
        try:
            await self._ws.send(build_frame(message_type, self.client_id, payload))
        except ConnectionClosed as e:
            if listener is not None:
                self._discard(listener)
            raise DispatcherConnectionClosed(
                f'cannot send "{message_type}": connection closed'
            ) from e

        if listener is None:
            return None
        return await self.wait(listener, timeout)

    async def stop(self) -> None:
        """Wait for the reader to finish after the socket has been closed."""
        if self._reader is not None:
            await self._reader

    def cancel(self) -> None:
        """Abort the reader without waiting for the socket."""
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
