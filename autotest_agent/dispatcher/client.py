"""Dispatcher WebSocket client.

Owns one socket to the dispatcher and the fixed message set the agent uses:
CONNECT on open, START_TEST / FINISH_TEST per test, and the inbound READY
signal that tells the agent the browser extension side is listening.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import InvalidHandshake, InvalidURI
from websockets.protocol import State

from autotest_agent.core.errors import (
    ConnectTimeout,
    DispatcherConnectError,
    TimedOut,
)
from autotest_agent.dispatcher.correlator import DEFAULT_MESSAGE_TIMEOUT, MessageCorrelator

logger = logging.getLogger(__name__)

# Default deadlines, in milliseconds
DEFAULT_CONNECT_TIMEOUT: int = 20000
DEFAULT_EXTENSION_READY_TIMEOUT: int = 60000
DEFAULT_TEST_ACTIONS_TIMEOUT: int = DEFAULT_MESSAGE_TIMEOUT
DEFAULT_CLOSE_TIMEOUT: int = 10000

NORMAL_CLOSURE = 1000


class DispatcherMessage(str, Enum):
    """Outbound dispatcher message types."""

    CONNECT = "CONNECT"
    START_TEST = "START_TEST"
    FINISH_TEST = "FINISH_TEST"


class IncomingMessage(str, Enum):
    """Inbound dispatcher message types."""

    READY = "READY"
    CONNECT = "CONNECT"
    START_TEST = "START_TEST"
    FINISH_TEST = "FINISH_TEST"


class DispatcherClient:
    """A live dispatcher connection. Created by connect_dispatcher().

    Attributes:
        ready: Task resolving on the first READY frame, or failing with
            TimedOut after the extension-ready deadline.
        client_id: Id announced in every outbound frame.
    """

    def __init__(
        self,
        ws: ClientConnection,
        correlator: MessageCorrelator,
        ready: asyncio.Task[Any],
        test_actions_timeout: float = DEFAULT_TEST_ACTIONS_TIMEOUT,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        self._ws = ws
        self._correlator = correlator
        self.ready = ready
        self._test_actions_timeout = test_actions_timeout
        self._close_timeout = close_timeout
        self._destroyed = False

    @property
    def client_id(self) -> str:
        return self._correlator.client_id

    @property
    def is_connected(self) -> bool:
        return self._ws.state is State.OPEN and self._correlator.is_running

    async def start_test(self, session_id: str, test_name: str) -> Any:
        """Report a test start and wait for the dispatcher to echo it."""
        return await self._correlator.send(
            DispatcherMessage.START_TEST.value,
            {"sessionId": session_id, "testName": test_name},
            timeout=self._test_actions_timeout,
        )

    async def finish_test(self, session_id: str, test_name: str) -> Any:
        """Report a test finish and wait for the dispatcher to echo it."""
        return await self._correlator.send(
            DispatcherMessage.FINISH_TEST.value,
            {"sessionId": session_id, "testName": test_name},
            timeout=self._test_actions_timeout,
        )

    async def destroy(self) -> None:
        """Close the socket with normal closure and wait until it is closed.

        Safe to call more than once.

        Raises:
            TimedOut: If the close handshake does not finish in time.
        """
        if self._destroyed:
            return
        self._destroyed = True

        if not self.ready.done():
            self.ready.cancel()

        async def _close() -> None:
            await self._ws.close(code=NORMAL_CLOSURE)
            await self._correlator.stop()

        logger.debug("closing dispatcher connection...")
        try:
            await asyncio.wait_for(_close(), timeout=self._close_timeout / 1000)
        except TimeoutError:
            self._correlator.cancel()
            raise TimedOut("close", self._close_timeout) from None
        logger.info("dispatcher connection closed")


async def connect_dispatcher(
    url: str,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    extension_ready_timeout: float = DEFAULT_EXTENSION_READY_TIMEOUT,
    test_actions_timeout: float = DEFAULT_TEST_ACTIONS_TIMEOUT,
    close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    client_id: str | None = None,
) -> DispatcherClient:
    """Open a dispatcher connection and announce this agent.

    The READY listener is registered before CONNECT is sent, so a dispatcher
    that answers CONNECT with READY straight away is never missed. CONNECT
    itself is fire-and-forget.

    Args:
        url: Dispatcher WebSocket URL.
        connect_timeout: Deadline for the opening handshake, in ms.
        extension_ready_timeout: Deadline for the READY frame, in ms.
        test_actions_timeout: Deadline for START_TEST/FINISH_TEST echoes, in ms.
        close_timeout: Deadline for destroy(), in ms.
        client_id: Client id to announce. Generated if omitted.

    Returns:
        The connected DispatcherClient.

    Raises:
        ConnectTimeout: If the socket does not open in time.
        DispatcherConnectError: If the socket cannot be opened.
    """
    logger.info("connecting to dispatcher at %s...", url)
    try:
        # open_timeout=None: the deadline is enforced here so it maps to ConnectTimeout
        ws = await asyncio.wait_for(
            websockets.connect(url, open_timeout=None, ping_interval=None),
            timeout=connect_timeout / 1000,
        )
    except TimeoutError:
        raise ConnectTimeout(connect_timeout) from None
    except (OSError, InvalidURI, InvalidHandshake) as e:
        raise DispatcherConnectError(f"failed to connect to dispatcher at {url}: {e}") from e
    logger.debug("connection open!")

    client_id = client_id or str(uuid.uuid4())
    logger.debug("client id: %s", client_id)

    correlator = MessageCorrelator(ws, client_id)
    correlator.start()

    ready_listener = correlator.listen(IncomingMessage.READY.value)
    ready = asyncio.create_task(correlator.wait(ready_listener, extension_ready_timeout))

    logger.debug("sending connect message...")
    try:
        await correlator.send(DispatcherMessage.CONNECT.value, await_response=False)
    except BaseException:
        ready.cancel()
        await ws.close(code=NORMAL_CLOSURE)
        raise
    logger.debug("connect message sent!")
    logger.info("dispatcher connected")

    return DispatcherClient(
        ws,
        correlator,
        ready,
        test_actions_timeout=test_actions_timeout,
        close_timeout=close_timeout,
    )
