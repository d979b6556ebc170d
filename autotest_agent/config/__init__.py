"""Configuration loading and validation."""

from autotest_agent.config.loader import (
    ENV_VARS,
    load_config,
    load_config_file,
    load_config_from_env,
    read_config_file,
    read_env,
)
from autotest_agent.config.schema import AgentConfig

__all__ = [
    "AgentConfig",
    "ENV_VARS",
    "load_config",
    "load_config_file",
    "load_config_from_env",
    "read_config_file",
    "read_env",
]
