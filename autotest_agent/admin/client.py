"""Async HTTP client for the admin backend's test2code session actions."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Generator
from enum import Enum
from typing import Any

import httpx

from autotest_agent.core.errors import (
    AdminConnectionError,
    AdminError,
    AuthenticationFailed,
    SessionActionError,
)
from autotest_agent.core.types import ConnectionTarget

logger = logging.getLogger(__name__)

AUTH_TOKEN_HEADER = "Authorization"

# Status code the backend puts in the body of a successful action
SUCCESS_CODE = 200

# Fallback messages for error responses without a body message
_STATUS_MESSAGES: dict[int, str] = {
    400: "bad request",
    500: "internal server error",
}
UNEXPECTED_ERROR = "unexpected error"


class AdminAction(str, Enum):
    """Session actions understood by the test2code plugin."""

    START = "START"
    STOP = "STOP"


class TestType(str, Enum):
    """Kind of tests a session collects coverage for."""

    __test__ = False  # not a pytest test class

    AUTO = "AUTO"


def ensure_protocol(url: str) -> str:
    """Prefix http:// unless the URL already names a scheme."""
    if "http" not in url:
        return f"http://{url}"
    return url


class BearerAuth(httpx.Auth):
    """Attaches the login token to every request of one client."""

    def __init__(self, token: str) -> None:
        self._token = token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers[AUTH_TOKEN_HEADER] = f"Bearer {self._token}"
        yield request


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _body_message(data: Any) -> str | None:
    """Extract the backend's ``message`` field from a response body."""
    items = data if isinstance(data, list) else [data]
    for item in items:
        if isinstance(item, dict):
            message = item.get("message")
            if isinstance(message, str) and message:
                return message
    return None


def describe_error(response: httpx.Response) -> str:
    """Human-readable reason for a failed admin response."""
    message = _body_message(_json_or_none(response))
    if message:
        return message
    return _STATUS_MESSAGES.get(response.status_code, UNEXPECTED_ERROR)


def is_successful(data: Any) -> bool:
    """Check an action response body.

    Agent targets answer with one object; service groups fan out and answer
    with one object per agent, of which at least one must have succeeded.
    """
    if isinstance(data, list):
        return any(isinstance(item, dict) and item.get("code") == SUCCESS_CODE for item in data)
    if isinstance(data, dict):
        return data.get("code") == SUCCESS_CODE
    return False


class AdminClient:
    """Client for admin backend session control.

    Usage:
        async with AdminClient("localhost:8090", agent_id="petclinic") as admin:
            session_id = await admin.start_session()
            ...
            await admin.stop_session(session_id)
    """

    def __init__(
        self,
        backend_url: str,
        agent_id: str | None = None,
        group_id: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client. No request is made until connect().

        Args:
            backend_url: Admin backend URL. http:// is assumed when no scheme is given.
            agent_id: Agent to drive sessions for.
            group_id: Service group to drive sessions for.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).

        Raises:
            MissingTarget: If not exactly one of agent_id / group_id is given.
        """
        self.target = ConnectionTarget(agent_id=agent_id, group_id=group_id)
        self.base_url = f"{ensure_protocol(backend_url).rstrip('/')}/api"
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._authenticated = False
        logger.debug("test2code route %s", self.route)

    @property
    def route(self) -> str:
        return self.target.route

    @property
    def is_authenticated(self) -> bool:
        return self._client is not None and self._authenticated

    async def __aenter__(self) -> AdminClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Log in and attach the bearer token to all further requests.

        Raises:
            AuthenticationFailed: If login is rejected or returns no token.
            AdminConnectionError: If the backend cannot be reached.
        """
        if self.is_authenticated:
            return

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        logger.debug("logging in...")
        try:
            token = await self._login()
        except BaseException:
            await self.close()
            raise
        self._client.auth = BearerAuth(token)
        self._authenticated = True
        logger.debug("logged in!")

    async def _login(self) -> str:
        assert self._client is not None
        try:
            response = await self._client.post("/login")
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AuthenticationFailed(
                f"admin backend authentication failed: {describe_error(e.response)}"
            ) from e
        except httpx.RequestError as e:
            raise AdminConnectionError(
                f"failed to reach admin backend at {self.base_url}: {e}"
            ) from e

        token = response.headers.get(AUTH_TOKEN_HEADER)
        if not token:
            raise AuthenticationFailed("admin backend authentication failed")
        return token

    async def close(self) -> None:
        """Close the underlying HTTP client. The token is discarded."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._authenticated = False

    async def _dispatch_action(
        self, action: AdminAction, payload: dict[str, Any], session_id: str
    ) -> Any:
        """Post a test2code action and validate the response body.

        Raises:
            SessionActionError: On HTTP errors, transport errors, or a body
                that does not report success.
        """
        if self._client is None or not self._authenticated:
            raise AdminError("admin client is not connected. Call connect() first.")

        body = {"type": action.value, "payload": payload}
        logger.debug("send %s %r", self.route, body)
        try:
            response = await self._client.post(self.route, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SessionActionError(describe_error(e.response), session_id) from e
        except httpx.RequestError as e:
            logger.error("unexpected error %r", e)
            raise SessionActionError(f"{UNEXPECTED_ERROR}: {e}", session_id) from e

        data = _json_or_none(response)
        if not is_successful(data):
            logger.warning("%s action rejected: %r", action.value, data)
            raise SessionActionError(_body_message(data) or UNEXPECTED_ERROR, session_id)
        return data

    async def start_session(self) -> str:
        """Start a realtime AUTO test session.

        Returns:
            The newly generated session id.
        """
        session_id = str(uuid.uuid4())
        await self._dispatch_action(
            AdminAction.START,
            {
                "sessionId": session_id,
                "testType": TestType.AUTO.value,
                "isRealtime": True,
            },
            session_id,
        )
        logger.info("session %s started", session_id)
        return session_id

    async def stop_session(self, session_id: str) -> None:
        """Stop a previously started session."""
        await self._dispatch_action(AdminAction.STOP, {"sessionId": session_id}, session_id)
        logger.info("session %s stopped", session_id)
