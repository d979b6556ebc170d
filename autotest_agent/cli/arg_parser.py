"""Argument parsing for the autotest-agent CLI."""

import argparse
from pathlib import Path


def add_connection_args(parser: argparse.ArgumentParser) -> None:
    """Add flags that override DRILL_* environment variables."""
    parser.add_argument("--admin-url", dest="admin_url", help="Admin backend URL (DRILL_ADMIN_URL)")
    parser.add_argument(
        "--dispatcher-url",
        dest="dispatcher_url",
        help="Dispatcher WebSocket URL (DRILL_DISPATCHER_URL)",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--agent-id", dest="agent_id", help="Agent id (DRILL_AGENT_ID)")
    target.add_argument("--group-id", dest="group_id", help="Service group id (DRILL_GROUP_ID)")
    parser.add_argument("--client-id", dest="client_id", help="Dispatcher client id (DRILL_CLIENT_ID)")
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON config file (used instead of environment variables)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autotest-agent",
        description="Autotest agent for admin test sessions and dispatcher test events",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log every dispatcher frame and HTTP request",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Load DRILL_* variables from this file (default: .env in the working directory)",
    )
    subparsers = parser.add_subparsers(dest="command")

    # check - run a full session cycle against the configured services
    check_parser = subparsers.add_parser(
        "check",
        help="Start and stop a session to verify admin and dispatcher connectivity",
    )
    add_connection_args(check_parser)
    check_parser.add_argument(
        "--test",
        dest="test_name",
        help="Also report a start/finish pair for this test name",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return build_parser().parse_args(argv)
