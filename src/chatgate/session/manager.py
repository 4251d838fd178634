"""Session lifecycle: create, look up, change status, append history."""

from __future__ import annotations

from pathlib import Path

import msgspec

from ..clock import iso_now
from ..errors import SessionKeyExceedsMax, SessionOwnershipMismatch
from ..logging import get_logger
from ..paths import ensure_safe_path_segment
from ..types import validate_max_sessions
from .activity import SessionActivityIndex
from .history import HistoryStore
from .models import (
    SESSION_STATUSES,
    HistoryEntry,
    SessionInfo,
    SessionMeta,
    SessionStatus,
    validate_session_key,
)
from .repository import SessionRepository

logger = get_logger(__name__)

ACTIVITY_FILENAME = ".activity.json"


class SessionManager:
    """Per-(group, owner, key) sessions backed by files under ``groups_dir``.

    Session ids are deterministic, so a second ``create_session`` for the same
    owner and key returns the existing session, and the same id requested by a
    different user is rejected instead of handed over.
    """

    def __init__(
        self,
        groups_dir: Path,
        *,
        repository: SessionRepository | None = None,
        history_store: HistoryStore | None = None,
        activity_index: SessionActivityIndex | None = None,
    ) -> None:
        self._repository = repository or SessionRepository(groups_dir)
        self._history = history_store or HistoryStore()
        self._activity = activity_index or SessionActivityIndex(
            groups_dir / ACTIVITY_FILENAME
        )

    @property
    def repository(self) -> SessionRepository:
        return self._repository

    @property
    def activity_index(self) -> SessionActivityIndex:
        return self._activity

    async def create_session(
        self,
        group_id: str,
        user_id: str,
        *,
        key: int = 0,
        max_sessions: int,
    ) -> SessionInfo:
        """Return the caller's session for slot ``key``, creating it if needed.

        Raises:
            InvalidConfig: ``max_sessions`` is not a positive integer.
            InvalidSessionKey: ``key`` is not a non-negative integer.
            SessionKeyExceedsMax: ``key >= max_sessions``.
            SessionOwnershipMismatch: the session id exists with another owner.
            PathSegmentUnsafe: ``group_id`` or ``user_id`` is not path-safe.
        """
        validate_max_sessions(max_sessions)
        validate_session_key(key)
        ensure_safe_path_segment(group_id, "groupId")
        session_id = self._repository.session_id(user_id, key)
        if key >= max_sessions:
            raise SessionKeyExceedsMax(key, max_sessions)

        async with self._repository.lock(group_id, session_id):
            existing = await self._repository.load(group_id, session_id)
            if existing is not None:
                if existing.meta.owner_id != user_id:
                    logger.warning(
                        "session.ownership_mismatch",
                        group_id=group_id,
                        session_id=session_id,
                        owner_id=existing.meta.owner_id,
                        user_id=user_id,
                    )
                    raise SessionOwnershipMismatch(
                        group_id=group_id,
                        session_id=session_id,
                        owner_id=existing.meta.owner_id,
                        user_id=user_id,
                    )
                return existing

            now = iso_now()
            meta = SessionMeta(
                session_id=session_id,
                group_id=group_id,
                owner_id=user_id,
                key=key,
                status="idle",
                created_at=now,
                updated_at=now,
            )
            session = await self._repository.create(meta)

        await self._activity.record(group_id, session_id)
        logger.info(
            "session.created", group_id=group_id, session_id=session_id, key=key
        )
        return session

    async def get_session(self, group_id: str, session_id: str) -> SessionInfo | None:
        return await self._repository.load(group_id, session_id)

    async def list_sessions(self, group_id: str) -> list[SessionInfo]:
        return await self._repository.list_sessions(group_id)

    async def update_status(
        self, session: SessionInfo, status: SessionStatus
    ) -> SessionInfo:
        """Write a copy of the meta with the new status and a fresh ``updatedAt``."""
        if status not in SESSION_STATUSES:
            raise ValueError(f"unknown session status: {status!r}")
        meta = session.meta
        async with self._repository.lock(meta.group_id, meta.session_id):
            updated = msgspec.structs.replace(meta, status=status, updated_at=iso_now())
            result = await self._repository.update(updated)
        await self._activity.record(meta.group_id, meta.session_id)
        logger.debug(
            "session.status",
            group_id=meta.group_id,
            session_id=meta.session_id,
            status=status,
        )
        return result

    async def append_history(self, session: SessionInfo, entry: HistoryEntry) -> None:
        meta = session.meta
        if entry.group_id is None or entry.session_id is None:
            entry = msgspec.structs.replace(
                entry,
                group_id=entry.group_id or meta.group_id,
                session_id=entry.session_id or meta.session_id,
            )
        async with self._repository.lock(meta.group_id, meta.session_id):
            await self._history.append(session.history_path, entry)
        await self._activity.record(meta.group_id, meta.session_id)

    async def read_history(
        self,
        session: SessionInfo,
        *,
        max_bytes: int | None = None,
        max_entries: int | None = None,
    ) -> list[HistoryEntry]:
        return await self._history.read(
            session.history_path, max_bytes=max_bytes, max_entries=max_entries
        )
