"""CLI commands. Each returns a process exit code."""

from __future__ import annotations

import argparse
from collections.abc import Mapping
from typing import Any

from autotest_agent.agent import start_agent
from autotest_agent.cli.output import print_error, print_info, print_step
from autotest_agent.config.loader import load_config, read_config_file, read_env
from autotest_agent.config.schema import AgentConfig
from autotest_agent.core.errors import AgentError, ConfigurationError

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

# Flags that override the file or environment value of the same field
_OVERRIDES = ("admin_url", "dispatcher_url", "agent_id", "group_id", "client_id")


def resolve_config(args: argparse.Namespace, environ: Mapping[str, str]) -> AgentConfig:
    """Merge command line flags over the config file or DRILL_* variables.

    Raises:
        ConfigurationError: If the merged settings are invalid.
    """
    data: dict[str, Any] = read_config_file(args.config) if args.config else read_env(environ)
    for field_name in _OVERRIDES:
        value = getattr(args, field_name, None)
        if value:
            data[field_name] = value
    # A target given on the command line replaces the configured one
    if getattr(args, "agent_id", None):
        data.pop("group_id", None)
    elif getattr(args, "group_id", None):
        data.pop("agent_id", None)
    return load_config(data)


async def cmd_check(config: AgentConfig, test_name: str | None = None) -> int:
    """Run start -> (optional test) -> destroy against the configured services."""
    target = f"agent {config.agent_id}" if config.agent_id else f"group {config.group_id}"
    print_info(f"admin: {config.admin_url}  dispatcher: {config.dispatcher_url}  target: {target}")

    if not config.dispatcher_enabled:
        print_error("dispatcher_url is not configured, the agent would be disabled")
        return EXIT_CONFIG

    try:
        agent = await start_agent(config)
    except ConfigurationError as e:
        print_error(e.message)
        return EXIT_CONFIG
    except AgentError as e:
        print_error(f"startup failed: {e}")
        return EXIT_FAILED
    print_step(f"session {agent.session_id} started")

    exit_code = EXIT_OK
    try:
        if test_name:
            await agent.start_test(test_name)
            print_step(f"START_TEST {test_name!r} acknowledged")
            await agent.finish_test(test_name)
            print_step(f"FINISH_TEST {test_name!r} acknowledged")
    except AgentError as e:
        print_error(str(e))
        exit_code = EXIT_FAILED
    finally:
        try:
            await agent.destroy()
            print_step("dispatcher closed and session stopped")
        except AgentError as e:
            print_error(f"teardown failed: {e}")
            exit_code = EXIT_FAILED
    return exit_code
