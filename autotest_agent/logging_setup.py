"""Logging configuration for the autotest_agent namespace.

Library code only creates module loggers; nothing is printed unless the host
application configures logging or calls configure_logging(). The CLI calls
it, and the pytest plugin leaves logging to pytest's own log capture.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

LOGGER_NAME = "autotest_agent"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# Marks handlers installed by configure_logging() so reconfiguring replaces them
_HANDLER_ATTR = "_autotest_agent_handler"


def configure_logging(
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Send autotest_agent.* records to stderr (or the given stream).

    Calling it again replaces the handler installed by the previous call, so
    the level can be changed without duplicating output.

    Args:
        level: Minimum level to emit. DEBUG shows every dispatcher frame.
        stream: Output stream. Defaults to sys.stderr.

    Returns:
        The configured namespace logger.
    """
    agent_logger = logging.getLogger(LOGGER_NAME)

    for handler in list(agent_logger.handlers):
        if getattr(handler, _HANDLER_ATTR, False):
            agent_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    setattr(console_handler, _HANDLER_ATTR, True)

    agent_logger.addHandler(console_handler)
    agent_logger.setLevel(level)
    # Don't propagate to root logger
    agent_logger.propagate = False
    return agent_logger
