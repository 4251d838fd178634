"""Validation for identifiers that end up in filesystem paths."""

from __future__ import annotations

import re

from .errors import PathSegmentUnsafe

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_safe_path_segment(value: object) -> bool:
    if not isinstance(value, str):
        return False
    return _SAFE_SEGMENT.fullmatch(value) is not None and ".." not in value


def ensure_safe_path_segment(value: object, label: str) -> str:
    """Return ``value`` unchanged, or raise if it could escape its directory."""
    if isinstance(value, str) and is_safe_path_segment(value):
        return value
    raise PathSegmentUnsafe(label, value)
