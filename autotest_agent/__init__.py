"""Autotest agent: binds test runner events to admin test sessions.

Usage:
    from autotest_agent import AgentConfig, start_agent

    config = AgentConfig(
        admin_url="localhost:8090",
        dispatcher_url="ws://localhost:8093",
        agent_id="petclinic",
    )
    agent = await start_agent(config)
    async with agent:
        await agent.start_test("test_login")
        await agent.finish_test("test_login")
"""

from autotest_agent.agent import (
    AgentHandle,
    AgentState,
    AutotestAgent,
    DisabledAgent,
    SessionCoordinator,
    start_agent,
)
from autotest_agent.config import AgentConfig, load_config, load_config_file, load_config_from_env
from autotest_agent.core.errors import (
    AgentError,
    AuthenticationFailed,
    ConfigurationError,
    ConnectTimeout,
    MissingTarget,
    SessionActionError,
    TimedOut,
)

__version__ = "0.1.0"

__all__ = [
    "AgentConfig",
    "AgentError",
    "AgentHandle",
    "AgentState",
    "AuthenticationFailed",
    "AutotestAgent",
    "ConfigurationError",
    "ConnectTimeout",
    "DisabledAgent",
    "MissingTarget",
    "SessionActionError",
    "SessionCoordinator",
    "TimedOut",
    "load_config",
    "load_config_file",
    "load_config_from_env",
    "start_agent",
]
