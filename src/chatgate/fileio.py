"""Crash-safe file writes.

Every document is written to a uniquely named temp file next to its target and
then renamed over it, so readers see either the old or the new version and a
crash mid-write only leaves an orphaned ``.tmp`` file behind.
"""

from __future__ import annotations

import contextlib
import os
import time
from pathlib import Path
from typing import Any

import anyio
import msgspec


def _temp_path_for(path: Path) -> Path:
    return path.with_name(f".{path.name}.{os.getpid()}.{time.time_ns()}.tmp")


def atomic_write_text(path: Path, content: str) -> None:
    """Write text atomically using a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if not content.endswith("\n"):
        content = f"{content}\n"
    tmp_path = _temp_path_for(path)
    try:
        tmp_path.write_text(content, encoding="utf-8")
        tmp_path.replace(path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise


def encode_json(data: Any) -> str:
    return msgspec.json.format(msgspec.json.encode(data), indent=2).decode("utf-8")


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON atomically using a temp file."""
    atomic_write_text(path, encode_json(data))


async def write_json(path: Path, data: Any) -> None:
    """Encode ``data`` and write it atomically without blocking the event loop."""
    content = encode_json(data)
    await anyio.to_thread.run_sync(atomic_write_text, path, content)


async def read_bytes_or_none(path: Path) -> bytes | None:
    try:
        return await anyio.Path(path).read_bytes()
    except FileNotFoundError:
        return None
