"""Session coordinator: keeps the admin session and the dispatcher in lockstep.

Startup:
    1. Admin login and dispatcher connect run concurrently; the first failure
       cancels the other.
    2. The dispatcher's READY signal is awaited.
    3. An admin session is started; its id is bound to every test event.

Teardown runs in the opposite direction: the dispatcher socket is closed
first, then the admin session is stopped. Both steps always run.

Without a dispatcher URL only the admin session runs, and test reporting is
unavailable.

Usage:
    agent = await start_agent(config)
    async with agent:
        await agent.start_test("test_login")
        await agent.finish_test("test_login")
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import httpx

from autotest_agent.admin.client import AdminClient
from autotest_agent.config.schema import AgentConfig
from autotest_agent.core.errors import (
    AgentError,
    ConfigurationError,
    SessionActionError,
    TeardownError,
)
from autotest_agent.core.types import Session, SessionState
from autotest_agent.dispatcher.client import DispatcherClient, connect_dispatcher

logger = logging.getLogger(__name__)

DISPATCHER_DISABLED_MESSAGE = "dispatcher is not initiated: dispatcher_url is not specified"


def _admin_client(
    config: AgentConfig, transport: httpx.AsyncBaseTransport | None
) -> AdminClient:
    return AdminClient(
        config.admin_url,
        config.agent_id,
        config.group_id,
        timeout=config.admin_request_timeout,
        transport=transport,
    )


class AgentState(Enum):
    """Coordinator lifecycle."""

    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_READY = "awaiting_ready"
    SESSION_STARTING = "session_starting"
    ACTIVE = "active"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class AgentHandle(ABC):
    """What a test runner integration talks to.

    Check ``enabled`` to tell a live agent from a disabled one instead of
    relying on the methods raising.
    """

    enabled: bool
    session_id: str | None

    @abstractmethod
    async def start_test(self, test_name: str) -> None:
        """Report that a test started."""

    @abstractmethod
    async def finish_test(self, test_name: str) -> None:
        """Report that a test finished."""

    @abstractmethod
    async def destroy(self) -> None:
        """Release the agent's connections and session."""

    async def __aenter__(self) -> AgentHandle:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.destroy()


class DisabledAgent(AgentHandle):
    """Agent variant used when no dispatcher is configured.

    The admin session still runs: start_agent() logs in and starts it, and
    destroy() stops it. Only test reporting is unavailable; start_test() and
    finish_test() raise ConfigurationError with the reason.
    """

    enabled = False

    def __init__(
        self,
        reason: str,
        admin: AdminClient | None = None,
        session_id: str | None = None,
    ) -> None:
        self.reason = reason
        self.session_id = session_id
        self._admin = admin

    async def start_test(self, test_name: str) -> None:
        raise ConfigurationError(self.reason)

    async def finish_test(self, test_name: str) -> None:
        raise ConfigurationError(self.reason)

    async def destroy(self) -> None:
        """Stop the admin session, if one was started. Safe to call more than once."""
        if self._admin is None:
            return
        admin, self._admin = self._admin, None
        try:
            if self.session_id is not None:
                await admin.stop_session(self.session_id)
        finally:
            await admin.close()


class AutotestAgent(AgentHandle):
    """A live agent bound to one admin session. Created by SessionCoordinator."""

    enabled = True

    def __init__(self, coordinator: SessionCoordinator) -> None:
        self._coordinator = coordinator

    @property
    def session_id(self) -> str:  # type: ignore[override]
        assert self._coordinator.session is not None
        return self._coordinator.session.id

    @property
    def state(self) -> AgentState:
        return self._coordinator.state

    async def start_test(self, test_name: str) -> None:
        await self._coordinator.start_test(test_name)

    async def finish_test(self, test_name: str) -> None:
        await self._coordinator.finish_test(test_name)

    async def destroy(self) -> None:
        await self._coordinator.shutdown()


class SessionCoordinator:
    """Orchestrates the admin client and the dispatcher client.

    One coordinator drives one session; create a new one to start another.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        admin_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            config: Validated agent configuration. dispatcher_url is required.
            admin_transport: Optional httpx transport for the admin client.

        Raises:
            ConfigurationError: If no dispatcher URL is configured.
        """
        if not config.dispatcher_url:
            raise ConfigurationError(DISPATCHER_DISABLED_MESSAGE)
        self._config = config
        self._admin_transport = admin_transport
        self._state = AgentState.IDLE
        self._admin: AdminClient | None = None
        self._dispatcher: DispatcherClient | None = None
        self.session: Session | None = None

    @property
    def state(self) -> AgentState:
        return self._state

    async def start(self) -> AutotestAgent:
        """Run the startup sequence.

        Returns:
            An agent handle bound to the new session.

        Raises:
            AgentError: Whatever failed first (login, connect, READY wait,
                session start). Everything opened so far is released and no
                handle is returned.
        """
        if self._state is not AgentState.IDLE:
            raise AgentError(f"coordinator cannot start from state {self._state.value}")

        config = self._config
        assert config.dispatcher_url is not None
        self._state = AgentState.CONNECTING
        try:
            self._admin = _admin_client(config, self._admin_transport)
            await self._connect(config.dispatcher_url)

            assert self._dispatcher is not None
            self._state = AgentState.AWAITING_READY
            logger.debug("waiting for dispatcher READY...")
            await self._dispatcher.ready
            logger.info("dispatcher ready")

            self._state = AgentState.SESSION_STARTING
            session_id = await self._admin.start_session()
        except BaseException:
            self._state = AgentState.FAILED
            await self._release()
            raise

        self.session = Session(id=session_id, target=self._admin.target, state=SessionState.ACTIVE)
        self._state = AgentState.ACTIVE
        logger.info("autotest agent active, session %s", session_id)
        return AutotestAgent(self)

    async def _connect(self, dispatcher_url: str) -> None:
        """Log in and open the dispatcher concurrently.

        The first failure cancels the other branch; whatever did open is kept
        on the coordinator so _release() can close it.
        """
        assert self._admin is not None
        config = self._config
        login = asyncio.create_task(self._admin.connect())
        connect = asyncio.create_task(
            connect_dispatcher(
                dispatcher_url,
                connect_timeout=config.connect_timeout,
                extension_ready_timeout=config.extension_ready_timeout,
                test_actions_timeout=config.test_actions_timeout,
                close_timeout=config.close_timeout,
                client_id=config.client_id,
            )
        )
        tasks = (login, connect)
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if not connect.cancelled() and connect.exception() is None:
            self._dispatcher = connect.result()
        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _release(self) -> None:
        """Best-effort cleanup after a failed startup."""
        if self._dispatcher is not None:
            try:
                await self._dispatcher.destroy()
            except Exception as cleanup_err:
                logger.warning("Failed to close dispatcher during cleanup: %s", cleanup_err)
        if self._admin is not None:
            await self._admin.close()

    async def _report(
        self,
        action: Callable[[str, str], Awaitable[Any]],
        test_name: str,
    ) -> None:
        session = self.session
        if self._state is not AgentState.ACTIVE or session is None:
            raise SessionActionError(
                f"cannot report test {test_name!r}: agent is {self._state.value}",
                session.id if session else None,
            )
        try:
            await action(session.id, test_name)
        except SessionActionError:
            raise
        except AgentError as e:
            raise SessionActionError(e.message, session.id) from e

    async def start_test(self, test_name: str) -> None:
        assert self._dispatcher is not None
        await self._report(self._dispatcher.start_test, test_name)

    async def finish_test(self, test_name: str) -> None:
        assert self._dispatcher is not None
        await self._report(self._dispatcher.finish_test, test_name)

    async def shutdown(self) -> None:
        """Close the dispatcher, then stop the session. Safe to call more than once.

        Raises:
            AgentError: The failure of a single teardown step.
            TeardownError: If both steps failed.
        """
        if self._state is not AgentState.ACTIVE:
            return
        assert self._dispatcher is not None
        assert self._admin is not None
        assert self.session is not None
        self._state = AgentState.STOPPING

        errors: list[Exception] = []
        try:
            await self._dispatcher.destroy()
        except Exception as e:
            logger.warning("Failed to close dispatcher connection: %s", e)
            errors.append(e)

        try:
            await self._admin.stop_session(self.session.id)
            self.session.state = SessionState.STOPPED
        except Exception as e:
            logger.warning("Failed to stop session %s: %s", self.session.id, e)
            errors.append(e)
        finally:
            await self._admin.close()

        self._state = AgentState.STOPPED
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise TeardownError(errors)


async def start_agent(
    config: AgentConfig,
    *,
    admin_transport: httpx.AsyncBaseTransport | None = None,
) -> AgentHandle:
    """Start an autotest agent for the given configuration.

    Without a dispatcher URL the admin session is still started, and a
    DisabledAgent that cannot report tests is returned.

    Args:
        config: Validated agent configuration.
        admin_transport: Optional httpx transport for the admin client.

    Returns:
        A live AutotestAgent, or a DisabledAgent.
    """
    if not config.dispatcher_url:
        logger.warning(DISPATCHER_DISABLED_MESSAGE)
        admin = _admin_client(config, admin_transport)
        try:
            await admin.connect()
            session_id = await admin.start_session()
        except BaseException:
            await admin.close()
            raise
        return DisabledAgent(DISPATCHER_DISABLED_MESSAGE, admin, session_id)
    return await SessionCoordinator(config, admin_transport=admin_transport).start()
