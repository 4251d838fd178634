"""Session documents."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Literal

import msgspec

from ..clock import iso_now
from ..errors import InvalidSessionKey

SessionStatus = Literal["idle", "running"]
SESSION_STATUSES: frozenset[str] = frozenset({"idle", "running"})

HistoryRole = Literal["user", "assistant", "system"]


class SessionMeta(
    msgspec.Struct, frozen=True, kw_only=True, rename="camel", forbid_unknown_fields=False
):
    """Contents of ``meta.json``. ``owner_id`` never changes after creation."""

    session_id: str
    group_id: str
    owner_id: str
    key: Annotated[int, msgspec.Meta(ge=0)]
    status: SessionStatus = "idle"
    created_at: str
    updated_at: str


@dataclass(frozen=True, slots=True)
class SessionInfo:
    meta: SessionMeta
    group_path: Path
    session_path: Path
    history_path: Path
    workspace_path: Path

    @property
    def session_id(self) -> str:
        return self.meta.session_id

    @property
    def group_id(self) -> str:
        return self.meta.group_id


class HistoryEntry(msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True):
    """One line of a session's append-only history log."""

    role: HistoryRole
    content: str
    created_at: str = msgspec.field(default_factory=iso_now)
    group_id: str | None = None
    session_id: str | None = None
    include_in_context: bool = True
    extra: dict[str, Any] = msgspec.field(default_factory=dict)


def validate_session_key(key: object) -> int:
    if isinstance(key, bool) or not isinstance(key, int) or key < 0:
        raise InvalidSessionKey("session key must be a non-negative integer")
    return key


def build_session_id(user_id: str, key: int) -> str:
    """Session ids are derived from the owner and slot, never random."""
    return f"{user_id}-{validate_session_key(key)}"
