"""Plain-text command detection."""

from .parser import (
    ALWAYS_ENQUEUE_PREFIXES,
    LoginCommand,
    LogoutCommand,
    ManagementCommand,
    ModelCommand,
    PushCommand,
    ResetCommand,
    is_always_enqueue,
    parse_management_command,
)

__all__ = [
    "ALWAYS_ENQUEUE_PREFIXES",
    "LoginCommand",
    "LogoutCommand",
    "ManagementCommand",
    "ModelCommand",
    "PushCommand",
    "ResetCommand",
    "is_always_enqueue",
    "parse_management_command",
]
