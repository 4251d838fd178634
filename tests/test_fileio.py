"""Tests for atomic file writes."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from chatgate.fileio import atomic_write_json, atomic_write_text, read_bytes_or_none, write_json


def test_atomic_write_text_creates_parents(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "dir" / "doc.txt"
    atomic_write_text(path, "hello")
    assert path.read_text(encoding="utf-8") == "hello\n"
    assert list(path.parent.iterdir()) == [path]


def test_atomic_write_json_is_pretty(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    atomic_write_json(path, {"a": 1, "b": [1, 2]})
    content = path.read_text(encoding="utf-8")
    assert content.endswith("\n")
    assert '\n  "a": 1' in content
    assert json.loads(content) == {"a": 1, "b": [1, 2]}


def test_failed_write_keeps_previous_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "doc.json"
    atomic_write_json(path, {"version": 1})

    def fail_replace(self: Path, target: Path) -> Path:
        raise OSError("disk full")

    monkeypatch.setattr(Path, "replace", fail_replace)
    with pytest.raises(OSError):
        atomic_write_json(path, {"version": 2})
    monkeypatch.undo()

    assert json.loads(path.read_text(encoding="utf-8")) == {"version": 1}
    assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]


@pytest.mark.anyio
async def test_write_json_and_read_back(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    await write_json(path, {"x": "y"})
    raw = await read_bytes_or_none(path)
    assert raw is not None
    assert json.loads(raw) == {"x": "y"}


@pytest.mark.anyio
async def test_read_missing_file(tmp_path: Path) -> None:
    assert await read_bytes_or_none(tmp_path / "missing.json") is None
