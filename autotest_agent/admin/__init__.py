"""Admin backend client: authentication and session start/stop."""

from autotest_agent.admin.client import (
    AdminAction,
    AdminClient,
    BearerAuth,
    TestType,
    describe_error,
    ensure_protocol,
    is_successful,
)

__all__ = [
    "AdminAction",
    "AdminClient",
    "BearerAuth",
    "TestType",
    "describe_error",
    "ensure_protocol",
    "is_successful",
]
