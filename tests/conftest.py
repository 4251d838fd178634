"""Pytest configuration.

Puts the local `src/` tree first on `sys.path` so tests exercise the working
copy of `chatgate`, and pins async tests to the asyncio backend.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
