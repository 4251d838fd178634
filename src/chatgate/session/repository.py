"""On-disk layout and persistence of session meta documents."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import anyio
import msgspec

from ..fileio import read_bytes_or_none, write_json
from ..locks import LockRegistry
from ..logging import get_logger
from ..paths import ensure_safe_path_segment, is_safe_path_segment
from .models import SessionInfo, SessionMeta, build_session_id

logger = get_logger(__name__)

META_FILENAME = "meta.json"
HISTORY_FILENAME = "history.jsonl"


@dataclass(frozen=True, slots=True)
class SessionPaths:
    group_path: Path
    sessions_path: Path
    session_path: Path
    meta_path: Path
    history_path: Path
    workspace_path: Path


class SessionRepository:
    """Owns ``<groups_dir>/<groupId>/sessions/<sessionId>/``.

    Writes go through :meth:`lock` so two writers never interleave on the same
    session; ``meta.json`` is always replaced atomically.
    """

    def __init__(self, groups_dir: Path, *, locks: LockRegistry | None = None) -> None:
        self._groups_dir = groups_dir
        self._locks = locks if locks is not None else LockRegistry()

    @property
    def groups_dir(self) -> Path:
        return self._groups_dir

    def group_path(self, group_id: str) -> Path:
        return self._groups_dir / ensure_safe_path_segment(group_id, "groupId")

    @staticmethod
    def session_id(user_id: str, key: int) -> str:
        return build_session_id(ensure_safe_path_segment(user_id, "userId"), key)

    def paths(self, group_id: str, session_id: str) -> SessionPaths:
        group_path = self.group_path(group_id)
        sessions_path = group_path / "sessions"
        session_path = sessions_path / ensure_safe_path_segment(session_id, "sessionId")
        return SessionPaths(
            group_path=group_path,
            sessions_path=sessions_path,
            session_path=session_path,
            meta_path=session_path / META_FILENAME,
            history_path=session_path / HISTORY_FILENAME,
            workspace_path=session_path / "workspace",
        )

    @asynccontextmanager
    async def lock(self, group_id: str, session_id: str) -> AsyncIterator[None]:
        async with self._locks.hold(f"{group_id}/{session_id}"):
            yield

    async def load(self, group_id: str, session_id: str) -> SessionInfo | None:
        paths = self.paths(group_id, session_id)
        raw = await read_bytes_or_none(paths.meta_path)
        if raw is None:
            return None
        try:
            meta = msgspec.json.decode(raw, type=SessionMeta)
        except msgspec.DecodeError as exc:
            # ValidationError is a DecodeError subclass
            logger.warning(
                "session.meta_invalid", path=str(paths.meta_path), error=str(exc)
            )
            return None
        if meta.group_id != group_id or meta.session_id != session_id:
            logger.warning(
                "session.meta_mismatch",
                meta_group_id=meta.group_id,
                meta_session_id=meta.session_id,
                group_id=group_id,
                session_id=session_id,
            )
            return None
        return self._build_info(meta, paths)

    async def create(self, meta: SessionMeta) -> SessionInfo:
        paths = self.paths(meta.group_id, meta.session_id)
        await anyio.to_thread.run_sync(_ensure_session_dirs, paths)
        await write_json(paths.meta_path, meta)
        return self._build_info(meta, paths)

    async def update(self, meta: SessionMeta) -> SessionInfo:
        paths = self.paths(meta.group_id, meta.session_id)
        await write_json(paths.meta_path, meta)
        return self._build_info(meta, paths)

    async def list_sessions(self, group_id: str) -> list[SessionInfo]:
        sessions_path = self.group_path(group_id) / "sessions"
        root = anyio.Path(sessions_path)
        if not await root.is_dir():
            return []
        found: list[SessionInfo] = []
        async for entry in root.iterdir():
            name = entry.name
            if name.startswith(".") or not is_safe_path_segment(name):
                continue
            if not await entry.is_dir():
                continue
            session = await self.load(group_id, name)
            if session is not None:
                found.append(session)
        found.sort(key=lambda s: s.meta.updated_at, reverse=True)
        return found

    @staticmethod
    def _build_info(meta: SessionMeta, paths: SessionPaths) -> SessionInfo:
        return SessionInfo(
            meta=meta,
            group_path=paths.group_path,
            session_path=paths.session_path,
            history_path=paths.history_path,
            workspace_path=paths.workspace_path,
        )


def _ensure_session_dirs(paths: SessionPaths) -> None:
    (paths.workspace_path / "input").mkdir(parents=True, exist_ok=True)
    (paths.workspace_path / "output").mkdir(parents=True, exist_ok=True)
