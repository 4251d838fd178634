"""Per-key async mutual exclusion."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

import anyio

T = TypeVar("T")


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = anyio.Lock()
        self.users = 0


class LockRegistry:
    """Serialize operations that share a key; different keys run in parallel.

    Waiters for one key are served in arrival order. A holder that raises still
    releases the lock, so a failed operation never blocks the ones queued behind
    it. The entry for a key is discarded once nobody holds or waits for it.

    Only protects callers inside one process; it is not a filesystem lock.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = _LockEntry()
            self._entries[key] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    async def run(self, key: str, func: Callable[..., Awaitable[T]], *args: object) -> T:
        """Run ``func(*args)`` once every earlier operation on ``key`` is done."""
        async with self.hold(key):
            return await func(*args)
