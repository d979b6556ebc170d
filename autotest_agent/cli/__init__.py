"""Command-line interface."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import find_dotenv, load_dotenv

from autotest_agent.cli.arg_parser import build_parser, parse_args
from autotest_agent.cli.commands import EXIT_CONFIG, cmd_check, resolve_config
from autotest_agent.cli.output import print_error
from autotest_agent.core.errors import ConfigurationError
from autotest_agent.logging_setup import configure_logging


def main(argv: list[str] | None = None) -> None:
    """Entry point for the autotest-agent CLI."""
    args = parse_args(argv)

    if args.command is None:
        build_parser().print_help()
        raise SystemExit(1)

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    # DRILL_* variables may come from a .env file; real environment wins
    load_dotenv(args.env_file or find_dotenv(usecwd=True))

    if args.command == "check":
        try:
            config = resolve_config(args, os.environ)
        except ConfigurationError as e:
            print_error(e.message)
            raise SystemExit(EXIT_CONFIG) from None
        raise SystemExit(asyncio.run(cmd_check(config, args.test_name)))

    print_error(f"Unknown command: {args.command}")
    raise SystemExit(1)


__all__ = ["main"]
