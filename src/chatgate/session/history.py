"""Append-only per-session history log (JSON lines)."""

from __future__ import annotations

from pathlib import Path

import anyio
import msgspec

from ..fileio import read_bytes_or_none
from ..logging import get_logger
from .models import HistoryEntry

logger = get_logger(__name__)

DEFAULT_MAX_BYTES = 1024 * 1024

_encoder = msgspec.json.Encoder()
_decoder = msgspec.json.Decoder(HistoryEntry)


def _append_line(path: Path, line: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("ab") as fh:
        fh.write(line)


class HistoryStore:
    """Entries are only ever appended; nothing rewrites an existing line."""

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        self._max_bytes = max_bytes

    async def append(self, path: Path, entry: HistoryEntry) -> None:
        line = _encoder.encode(entry) + b"\n"
        await anyio.to_thread.run_sync(_append_line, path, line)

    async def read(
        self,
        path: Path,
        *,
        max_bytes: int | None = None,
        max_entries: int | None = None,
    ) -> list[HistoryEntry]:
        """Return the newest entries that fit in ``max_bytes``, oldest first.

        Lines that fail to parse are skipped.
        """
        raw = await read_bytes_or_none(path)
        if not raw:
            return []

        lines: list[tuple[bytes, HistoryEntry]] = []
        skipped = 0
        for line in raw.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                lines.append((line, _decoder.decode(line)))
            except msgspec.DecodeError:
                skipped += 1
        if skipped:
            logger.warning("history.entries_skipped", path=str(path), count=skipped)

        budget = self._max_bytes if max_bytes is None else max_bytes
        if budget > 0:
            lines = _trim_to_bytes(lines, budget)
        entries = [entry for _, entry in lines]
        if max_entries is not None and max_entries > 0:
            entries = entries[-max_entries:]
        return entries


def _trim_to_bytes(
    lines: list[tuple[bytes, HistoryEntry]], max_bytes: int
) -> list[tuple[bytes, HistoryEntry]]:
    total = 0
    kept = 0
    for line, _ in reversed(lines):
        size = len(line) + 1
        if total + size > max_bytes:
            break
        total += size
        kept += 1
    return lines[len(lines) - kept :]
