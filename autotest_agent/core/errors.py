"""Typed exception hierarchy for the autotest agent."""

from __future__ import annotations


class AgentError(Exception):
    """Base class for all autotest agent errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(AgentError):
    """Raised for configuration issues (missing values, invalid settings, disabled agent)."""


class MissingTarget(ConfigurationError):
    """Raised when not exactly one of agent id / group id is configured."""

    def __init__(self, message: str = "please specify either agent_id or group_id") -> None:
        super().__init__(message)


class TimedOut(AgentError):
    """Raised when an awaited event does not happen within its deadline.

    Attributes:
        operation: The message type or socket event that was awaited.
        timeout: The deadline in milliseconds.
    """

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f'"{operation}" timed out: {timeout}ms')


class ConnectTimeout(TimedOut):
    """Raised when the dispatcher socket does not open in time."""

    def __init__(self, timeout: float) -> None:
        super().__init__("open", timeout)


class DispatcherError(AgentError):
    """Raised for dispatcher socket failures."""


class DispatcherConnectError(DispatcherError):
    """Raised when the dispatcher socket cannot be opened."""


class DispatcherConnectionClosed(DispatcherError):
    """Raised when the dispatcher socket closes under a pending operation."""


class AdminError(AgentError):
    """Raised for admin backend failures."""


class AuthenticationFailed(AdminError):
    """Raised when the admin backend login does not yield a bearer token."""


class AdminConnectionError(AdminError):
    """Raised when the admin backend cannot be reached."""


class SessionActionError(AdminError):
    """Raised when a session-scoped action fails.

    Attributes:
        session_id: The session the failed action belonged to.
    """

    def __init__(self, message: str, session_id: str | None) -> None:
        self.session_id = session_id
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.message} (session {self.session_id})"


class TeardownError(AgentError):
    """Raised when both dispatcher teardown and session stop fail.

    Attributes:
        errors: The failures in the order the teardown steps ran.
    """

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = errors
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"agent teardown failed: {details}")
