"""Dispatcher connection: per-test start/finish signalling over a WebSocket.

Usage:
    from autotest_agent.dispatcher import connect_dispatcher

    dispatcher = await connect_dispatcher("ws://localhost:8093")
    await dispatcher.ready
    await dispatcher.start_test(session_id, "test_login")
    await dispatcher.finish_test(session_id, "test_login")
    await dispatcher.destroy()
"""

from autotest_agent.dispatcher.client import (
    DispatcherClient,
    DispatcherMessage,
    IncomingMessage,
    connect_dispatcher,
)
from autotest_agent.dispatcher.correlator import MessageCorrelator, build_frame

__all__ = [
    "DispatcherClient",
    "DispatcherMessage",
    "IncomingMessage",
    "MessageCorrelator",
    "build_frame",
    "connect_dispatcher",
]
