"""Process settings read from ``CHATGATE_*`` environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Literal

import msgspec

from .errors import InvalidConfig
from .session.history import DEFAULT_MAX_BYTES

ENV_PREFIX = "CHATGATE_"
DEFAULT_DATA_DIR = "~/.chatgate"


class Settings(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    data_dir: str = DEFAULT_DATA_DIR
    groups_dir: str | None = None  # defaults to <data_dir>/groups
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    log_format: Literal["console", "json"] = "console"
    history_max_bytes: Annotated[int, msgspec.Meta(gt=0)] = DEFAULT_MAX_BYTES

    @property
    def resolved_groups_dir(self) -> Path:
        if self.groups_dir:
            return Path(self.groups_dir).expanduser()
        return self.users_root / "groups"

    @property
    def users_root(self) -> Path:
        """Root that holds ``users/<userId>/state.json``."""
        return Path(self.data_dir).expanduser()


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    raw: dict[str, str] = {}
    for name in Settings.__struct_fields__:
        value = env.get(f"{ENV_PREFIX}{name.upper()}")
        if value is None or not value.strip():
            continue
        value = value.strip()
        raw[name] = value.lower() if name.startswith("log_") else value
    try:
        return msgspec.convert(raw, Settings, strict=False)
    except msgspec.ValidationError as exc:
        raise InvalidConfig(f"invalid settings: {exc}") from exc
