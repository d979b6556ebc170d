"""Pydantic model for autotest agent configuration validation."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError

# Error type reported when not exactly one of agent_id / group_id is set
MISSING_TARGET_ERROR = "missing_target"


class AgentConfig(BaseModel):
    """Everything the session coordinator needs, supplied by the caller.

    Timeouts for the dispatcher socket are in milliseconds, matching the
    DRILL_*_TIMEOUT_MS environment variables.

    Example:
        AgentConfig(
            admin_url="localhost:8090",
            dispatcher_url="ws://localhost:8093",
            agent_id="petclinic",
        )
    """

    model_config = ConfigDict(extra="forbid")

    admin_url: str = Field(min_length=1)
    """Admin backend URL. http:// is assumed when no scheme is given."""

    dispatcher_url: str | None = None
    """Dispatcher WebSocket URL. Without it the agent is disabled."""

    agent_id: str | None = None
    """Agent to start sessions for. Mutually exclusive with group_id."""

    group_id: str | None = None
    """Service group to start sessions for. Mutually exclusive with agent_id."""

    client_id: str | None = None
    """Client id announced to the dispatcher. Generated when omitted."""

    connect_timeout: int = Field(default=20000, gt=0)
    """Deadline for opening the dispatcher socket, in ms."""

    extension_ready_timeout: int = Field(default=60000, gt=0)
    """Deadline for the dispatcher's READY signal, in ms."""

    test_actions_timeout: int = Field(default=10000, gt=0)
    """Deadline for START_TEST/FINISH_TEST echoes, in ms."""

    close_timeout: int = Field(default=10000, gt=0)
    """Deadline for closing the dispatcher socket, in ms."""

    admin_request_timeout: float = Field(default=30.0, gt=0)
    """Timeout for admin backend HTTP requests, in seconds."""

    @field_validator("dispatcher_url", "agent_id", "group_id", "client_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_target(self) -> "AgentConfig":
        if bool(self.agent_id) == bool(self.group_id):
            raise PydanticCustomError(
                MISSING_TARGET_ERROR, "please specify either agent_id or group_id"
            )
        return self

    @property
    def dispatcher_enabled(self) -> bool:
        return self.dispatcher_url is not None
