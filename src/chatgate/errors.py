"""Error taxonomy.

Write paths raise these to the caller. Read paths (user state, session meta)
log and degrade to ``None`` instead, so a corrupt or foreign document never
breaks message handling.
"""

from __future__ import annotations


class ChatgateError(Exception):
    """Base class for all errors raised by this package."""


class InvalidConfig(ChatgateError, ValueError):
    """A configuration value is missing or out of range."""


class InvalidSessionKey(ChatgateError, ValueError):
    """A session key is not a non-negative integer."""


class SessionKeyExceedsMax(ChatgateError):
    def __init__(self, key: int, max_sessions: int) -> None:
        super().__init__(
            f"session key {key} exceeds maxSessions ({max_sessions}) for this group"
        )
        self.key = key
        self.max_sessions = max_sessions


class SessionOwnershipMismatch(ChatgateError):
    def __init__(
        self, *, group_id: str, session_id: str, owner_id: str, user_id: str
    ) -> None:
        super().__init__(
            f"session {session_id!r} in group {group_id!r} is owned by another user"
        )
        self.group_id = group_id
        self.session_id = session_id
        self.owner_id = owner_id
        self.user_id = user_id


class UserStateCorrupt(ChatgateError):
    """A stored user document cannot be migrated to the current schema."""


class PathSegmentUnsafe(ChatgateError, ValueError):
    def __init__(self, label: str, value: object) -> None:
        super().__init__(f"{label} must be a safe path segment")
        self.label = label
        self.value = value
