"""pytest plugin that reports every test to the dispatcher.

Enable it explicitly:

    pytest -p autotest_agent.pytest_plugin --autotest-agent

Configuration comes from DRILL_* environment variables, or from a JSON file
given with --autotest-config. The agent runs on a private event loop that is
only driven inside pytest hooks, so it does not interfere with async test
plugins.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import pytest

from autotest_agent.agent import AgentHandle, start_agent
from autotest_agent.config.loader import load_config_file, load_config_from_env
from autotest_agent.config.schema import AgentConfig
from autotest_agent.core.errors import AgentError

logger = logging.getLogger(__name__)

PLUGIN_NAME = "autotest-agent-session"


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("autotest-agent", "autotest agent test sessions")
    group.addoption(
        "--autotest-agent",
        action="store_true",
        dest="autotest_agent",
        default=False,
        help="Start an autotest agent session and report each test to the dispatcher",
    )
    group.addoption(
        "--autotest-config",
        dest="autotest_config",
        default=None,
        metavar="PATH",
        help="JSON agent configuration (default: DRILL_* environment variables)",
    )


class AutotestAgentPlugin:
    """Holds the agent for one pytest session."""

    def __init__(self, agent_config: AgentConfig) -> None:
        self._agent_config = agent_config
        self._runner: asyncio.Runner | None = None
        self.agent: AgentHandle | None = None
        self._warned_disabled = False

    def start(self) -> None:
        # loop_factory keeps the runner from installing its loop as the thread default
        self._runner = asyncio.Runner(loop_factory=asyncio.new_event_loop)
        try:
            self.agent = self._runner.run(start_agent(self._agent_config))
        except BaseException:
            self._runner.close()
            self._runner = None
            raise
        if self.agent.enabled:
            logger.info("autotest agent session %s started", self.agent.session_id)

    def stop(self) -> None:
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        try:
            if self.agent is not None:
                runner.run(self.agent.destroy())
        except AgentError as e:
            logger.warning("autotest agent teardown failed: %s", e)
        finally:
            runner.close()

    def _report(self, method_name: str, nodeid: str) -> None:
        if self.agent is None or self._runner is None:
            return
        if not self.agent.enabled:
            if not self._warned_disabled:
                logger.warning("autotest agent is disabled, tests are not reported")
                self._warned_disabled = True
            return
        try:
            self._runner.run(getattr(self.agent, method_name)(nodeid))
        except AgentError as e:
            logger.warning("Failed to report %s for %s: %s", method_name, nodeid, e)

    def pytest_sessionstart(self, session: pytest.Session) -> None:
        try:
            self.start()
        except AgentError as e:
            raise pytest.UsageError(f"autotest agent failed to start: {e}") from e

    def pytest_runtest_logstart(self, nodeid: str, location: tuple[str, int | None, str]) -> None:
        self._report("start_test", nodeid)

    def pytest_runtest_logfinish(self, nodeid: str, location: tuple[str, int | None, str]) -> None:
        self._report("finish_test", nodeid)

    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        self.stop()


def pytest_configure(config: pytest.Config) -> None:
    if not config.getoption("autotest_agent", default=False):
        return
    path = config.getoption("autotest_config", default=None)
    try:
        if path:
            agent_config = load_config_file(Path(path))
        else:
            agent_config = load_config_from_env(os.environ)
    except AgentError as e:
        raise pytest.UsageError(f"autotest agent: {e}") from e
    config.pluginmanager.register(AutotestAgentPlugin(agent_config), PLUGIN_NAME)


def pytest_unconfigure(config: pytest.Config) -> None:
    plugin = config.pluginmanager.get_plugin(PLUGIN_NAME)
    if plugin is not None:
        plugin.stop()
        config.pluginmanager.unregister(plugin, PLUGIN_NAME)
