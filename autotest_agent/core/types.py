"""Core data types shared by the admin client and the coordinator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from autotest_agent.core.errors import MissingTarget

DISPATCH_ACTION_ROUTE = "/{route}/{target_id}/plugins/test2code/dispatch-action"


class SessionState(Enum):
    """Lifecycle of an admin test session."""

    PENDING = "pending"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ConnectionTarget:
    """The admin resource a session is started against.

    Exactly one of agent_id / group_id is set. Group targets fan out to
    every agent in the service group.
    """

    agent_id: str | None = None
    group_id: str | None = None

    def __post_init__(self) -> None:
        if bool(self.agent_id) == bool(self.group_id):
            raise MissingTarget()

    @property
    def route(self) -> str:
        """Relative admin route for test2code dispatch actions."""
        if self.group_id:
            return DISPATCH_ACTION_ROUTE.format(route="service-groups", target_id=self.group_id)
        return DISPATCH_ACTION_ROUTE.format(route="agents", target_id=self.agent_id)


@dataclass
class Session:
    """A test session as tracked by the coordinator."""

    id: str
    target: ConnectionTarget
    state: SessionState = SessionState.PENDING
