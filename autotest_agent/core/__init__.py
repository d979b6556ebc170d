"""Core types and errors."""

from autotest_agent.core.errors import (
    AdminConnectionError,
    AdminError,
    AgentError,
    AuthenticationFailed,
    ConfigurationError,
    ConnectTimeout,
    DispatcherConnectError,
    DispatcherConnectionClosed,
    DispatcherError,
    MissingTarget,
    SessionActionError,
    TeardownError,
    TimedOut,
)
from autotest_agent.core.types import ConnectionTarget, Session, SessionState

__all__ = [
    "AgentError",
    "ConfigurationError",
    "MissingTarget",
    "TimedOut",
    "ConnectTimeout",
    "DispatcherError",
    "DispatcherConnectError",
    "DispatcherConnectionClosed",
    "AdminError",
    "AuthenticationFailed",
    "AdminConnectionError",
    "SessionActionError",
    "TeardownError",
    "ConnectionTarget",
    "Session",
    "SessionState",
]
