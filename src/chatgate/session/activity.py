"""Last-activity index used by idle-session maintenance."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import anyio
import msgspec

from ..clock import epoch_ms
from ..fileio import atomic_write_json
from ..logging import get_logger
from ..paths import ensure_safe_path_segment, is_safe_path_segment

logger = get_logger(__name__)

ACTIVITY_VERSION = 1

# (inode, mtime_ns, size); atomic replaces always produce a new inode
FileStamp = tuple[int, int, int]


class ActivityData(msgspec.Struct, forbid_unknown_fields=False):
    """Root structure of the activity file: ``groupId:sessionId`` -> epoch ms."""

    version: int = ACTIVITY_VERSION
    sessions: dict[str, int] = msgspec.field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ActivityKey:
    group_id: str
    session_id: str


@dataclass(slots=True)
class _Snapshot:
    data: ActivityData
    stamp: FileStamp | None


def _file_stamp(path: Path) -> FileStamp | None:
    try:
        stat = path.stat()
    except FileNotFoundError:
        return None
    return (stat.st_ino, stat.st_mtime_ns, stat.st_size)


def _read_snapshot(path: Path) -> _Snapshot:
    stamp = _file_stamp(path)
    if stamp is None:
        return _Snapshot(ActivityData(), None)
    try:
        data = msgspec.json.decode(path.read_bytes(), type=ActivityData)
    except (OSError, msgspec.DecodeError) as exc:
        logger.warning("activity.load_failed", path=str(path), error=str(exc))
        data = ActivityData()
    return _Snapshot(data, stamp)


def _write_snapshot(path: Path, data: ActivityData) -> FileStamp | None:
    atomic_write_json(path, data)
    return _file_stamp(path)


class SessionActivityIndex:
    """JSON-file backed index of when each session was last touched.

    File access runs in worker threads. The document is re-read whenever its
    stat stamp differs from the one this instance last saw, so several writers
    sharing the file see each other's updates.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = anyio.Lock()
        self._snapshot: _Snapshot | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def _current(self) -> ActivityData:
        snapshot = self._snapshot
        if snapshot is not None:
            stamp = await anyio.to_thread.run_sync(_file_stamp, self._path)
            if stamp == snapshot.stamp:
                return snapshot.data
        snapshot = await anyio.to_thread.run_sync(_read_snapshot, self._path)
        self._snapshot = snapshot
        return snapshot.data

    async def _store(self, data: ActivityData) -> None:
        try:
            stamp = await anyio.to_thread.run_sync(_write_snapshot, self._path, data)
        except BaseException:
            # in-memory data no longer matches the file
            self._snapshot = None
            raise
        self._snapshot = _Snapshot(data, stamp)

    @staticmethod
    def _member(group_id: str, session_id: str) -> str:
        ensure_safe_path_segment(group_id, "groupId")
        ensure_safe_path_segment(session_id, "sessionId")
        return f"{group_id}:{session_id}"

    async def record(
        self, group_id: str, session_id: str, timestamp_ms: int | None = None
    ) -> None:
        """Mark a session as active now (or at ``timestamp_ms``)."""
        member = self._member(group_id, session_id)
        async with self._lock:
            data = await self._current()
            data.sessions[member] = timestamp_ms if timestamp_ms is not None else epoch_ms()
            await self._store(data)

    async def last_active(self, group_id: str, session_id: str) -> int | None:
        member = self._member(group_id, session_id)
        async with self._lock:
            data = await self._current()
        return data.sessions.get(member)

    async def fetch_expired(self, cutoff_ms: int) -> list[ActivityKey]:
        """Sessions whose last activity is at or before ``cutoff_ms``, oldest first."""
        async with self._lock:
            data = await self._current()
            items = sorted(data.sessions.items(), key=lambda item: item[1])
        expired: list[ActivityKey] = []
        for member, touched in items:
            if touched > cutoff_ms:
                break
            key = _decode_member(member)
            if key is None:
                logger.warning("activity.invalid_member", member=member)
                continue
            expired.append(key)
        return expired

    async def remove(self, group_id: str, session_id: str) -> bool:
        member = self._member(group_id, session_id)
        async with self._lock:
            data = await self._current()
            if data.sessions.pop(member, None) is None:
                return False
            await self._store(data)
            return True


def _decode_member(member: str) -> ActivityKey | None:
    group_id, sep, session_id = member.partition(":")
    if not sep or not is_safe_path_segment(group_id) or not is_safe_path_segment(session_id):
        return None
    return ActivityKey(group_id=group_id, session_id=session_id)
