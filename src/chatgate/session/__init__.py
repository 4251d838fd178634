"""Session documents, history logs and their lifecycle."""

from .activity import ActivityKey, SessionActivityIndex
from .history import HistoryStore
from .manager import SessionManager
from .models import (
    HistoryEntry,
    SessionInfo,
    SessionMeta,
    SessionStatus,
    build_session_id,
)
from .repository import SessionRepository

__all__ = [
    "ActivityKey",
    "HistoryEntry",
    "HistoryStore",
    "SessionActivityIndex",
    "SessionInfo",
    "SessionManager",
    "SessionMeta",
    "SessionRepository",
    "SessionStatus",
    "build_session_id",
]
