"""Configuration loading from mappings, environment variables and JSON files.

The session coordinator never reads the environment itself: callers build an
AgentConfig here (or directly) and pass it in.

Environment variables:
    DRILL_ADMIN_URL                      admin backend URL (required)
    DRILL_DISPATCHER_URL                 dispatcher WebSocket URL
    DRILL_AGENT_ID / DRILL_GROUP_ID      exactly one is required
    DRILL_CLIENT_ID                      dispatcher client id
    DRILL_DISPATCHER_CONNECT_TIMEOUT_MS  socket open deadline
    DRILL_EXTENSION_READY_TIMEOUT_MS     READY deadline
    DRILL_TEST_ACTIONS_TIMEOUT_MS        START_TEST/FINISH_TEST deadline
    DRILL_MESSAGE_TIMEOUT                fallback for the test actions deadline
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from autotest_agent.config.schema import MISSING_TARGET_ERROR, AgentConfig
from autotest_agent.core.errors import ConfigurationError, MissingTarget

logger = logging.getLogger(__name__)

# Config field -> environment variable
ENV_VARS: dict[str, str] = {
    "admin_url": "DRILL_ADMIN_URL",
    "dispatcher_url": "DRILL_DISPATCHER_URL",
    "agent_id": "DRILL_AGENT_ID",
    "group_id": "DRILL_GROUP_ID",
    "client_id": "DRILL_CLIENT_ID",
}

TIMEOUT_ENV_VARS: dict[str, tuple[str, ...]] = {
    "connect_timeout": ("DRILL_DISPATCHER_CONNECT_TIMEOUT_MS",),
    "extension_ready_timeout": ("DRILL_EXTENSION_READY_TIMEOUT_MS",),
    "test_actions_timeout": ("DRILL_TEST_ACTIONS_TIMEOUT_MS", "DRILL_MESSAGE_TIMEOUT"),
}


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)


def load_config(data: Mapping[str, Any]) -> AgentConfig:
    """Validate a mapping into an AgentConfig.

    Raises:
        MissingTarget: If not exactly one of agent_id / group_id is set.
        ConfigurationError: If validation fails otherwise.
    """
    try:
        return AgentConfig.model_validate(dict(data))
    except ValidationError as e:
        message = f"invalid autotest agent configuration: {_format_validation_error(e)}"
        if any(item["type"] == MISSING_TARGET_ERROR for item in e.errors()):
            raise MissingTarget(message) from e
        raise ConfigurationError(message) from e


def read_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect the DRILL_* variables that are set, keyed by config field.

    Raises:
        ConfigurationError: If a timeout variable is not an integer.
    """
    data: dict[str, Any] = {}
    for field_name, var in ENV_VARS.items():
        value = environ.get(var, "").strip()
        if value:
            data[field_name] = value

    for field_name, candidates in TIMEOUT_ENV_VARS.items():
        for var in candidates:
            raw = environ.get(var, "").strip()
            if not raw:
                continue
            try:
                data[field_name] = int(raw)
            except ValueError as e:
                raise ConfigurationError(f"{var} must be an integer number of ms, got {raw!r}") from e
            break
    return data


def load_config_from_env(environ: Mapping[str, str]) -> AgentConfig:
    """Build an AgentConfig from DRILL_* variables.

    Args:
        environ: Environment mapping, usually os.environ. Empty values are unset.

    Raises:
        MissingTarget: If neither or both of the target variables are set.
        ConfigurationError: If DRILL_ADMIN_URL is missing, a timeout is not
            an integer, or validation fails.
    """
    data = read_env(environ)
    if "admin_url" not in data:
        raise ConfigurationError(f"please specify {ENV_VARS['admin_url']} in env variables")
    if "agent_id" not in data and "group_id" not in data:
        raise MissingTarget(
            f"please specify either {ENV_VARS['agent_id']} or {ENV_VARS['group_id']} in env variables"
        )

    logger.debug("Loaded config from environment: %s", sorted(data))
    return load_config(data)


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a JSON object file without validating it.

    Raises:
        ConfigurationError: If the file is missing, unreadable, or not a JSON object.
    """
    resolved = path.resolve()
    try:
        content = resolved.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise ConfigurationError(f"failed to read config file {path}: {e}") from e

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"expected object in {path}, got {type(data).__name__}")

    logger.debug("Loaded config file: %s", resolved)
    return data


def load_config_file(path: Path) -> AgentConfig:
    """Load an AgentConfig from a JSON object file.

    Raises:
        ConfigurationError: If the file cannot be read or fails validation.
    """
    return load_config(read_config_file(path))
