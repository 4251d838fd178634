"""Parsers for commands users type as ordinary chat text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

# Utility commands that skip mention/keyword gating entirely.
ALWAYS_ENQUEUE_PREFIXES: tuple[str, ...] = ("/nano", "/polish", "/quest")

_ALWAYS_ENQUEUE = re.compile(
    r"^(?:" + "|".join(re.escape(p) for p in ALWAYS_ENQUEUE_PREFIXES) + r")\b",
    re.IGNORECASE,
)

_RESET_ALL = re.compile(r"^/?resetall$", re.IGNORECASE)
_RESET = re.compile(r"^(?:/?reset|/?重置)(?:\s+(.+))?$", re.IGNORECASE)
_MODEL = re.compile(r"^(?:/?model|/?模型)(?:\s+|$)(.*)$", re.IGNORECASE | re.DOTALL)
_PUSH = re.compile(r"^(?:/?push|/?推送)(?:\s+(.+))?$", re.IGNORECASE)
_PUSH_TIME = re.compile(r"^(?:(?:time|at|时间)\s+)?(\d{1,2}:\d{2})$", re.IGNORECASE)
_LOGIN = re.compile(r"^/?login(?:\s+(.+))?$", re.IGNORECASE)
_LOGOUT = re.compile(r"^/?logout$", re.IGNORECASE)

_RESET_ALL_ARGS = {"all", "everyone", "所有人", "全群"}
_MODEL_CLEAR_ARGS = {"default", "clear", "none", "off", "reset", "默认"}
_PUSH_ENABLE_ARGS = {"on", "enable", "enabled", "1", "true", "开", "开启", "启用"}
_PUSH_DISABLE_ARGS = {"off", "disable", "disabled", "0", "false", "关", "关闭", "停用"}


@dataclass(frozen=True, slots=True)
class ResetCommand:
    scope: Literal["self", "all"]


@dataclass(frozen=True, slots=True)
class ModelCommand:
    # "" asks for the current model, None clears the override
    model: str | None


@dataclass(frozen=True, slots=True)
class PushCommand:
    action: Literal["status", "enable", "disable", "time"]
    time: str | None = None


@dataclass(frozen=True, slots=True)
class LoginCommand:
    token: str | None


@dataclass(frozen=True, slots=True)
class LogoutCommand:
    pass


ManagementCommand = ResetCommand | ModelCommand | PushCommand | LoginCommand | LogoutCommand


def is_always_enqueue(text: str) -> bool:
    return _ALWAYS_ENQUEUE.match(text.strip()) is not None


def parse_management_command(text: str) -> ManagementCommand | None:
    trimmed = text.strip()
    if not trimmed:
        return None

    if _RESET_ALL.match(trimmed) or trimmed == "重置全群":
        return ResetCommand(scope="all")

    if match := _RESET.match(trimmed):
        arg = (match.group(1) or "").strip()
        if not arg:
            return ResetCommand(scope="self")
        if arg.lower() in _RESET_ALL_ARGS:
            return ResetCommand(scope="all")
        return None

    if match := _MODEL.match(trimmed):
        arg = match.group(1).strip()
        if arg.lower() in _MODEL_CLEAR_ARGS:
            return ModelCommand(model=None)
        return ModelCommand(model=arg)

    if match := _PUSH.match(trimmed):
        return _parse_push((match.group(1) or "").strip())

    if match := _LOGIN.match(trimmed):
        token = (match.group(1) or "").strip()
        return LoginCommand(token=token or None)

    if _LOGOUT.match(trimmed):
        return LogoutCommand()

    return None


def _parse_push(arg: str) -> PushCommand:
    lowered = arg.lower()
    if not lowered:
        return PushCommand(action="status")
    if lowered in _PUSH_ENABLE_ARGS:
        return PushCommand(action="enable")
    if lowered in _PUSH_DISABLE_ARGS:
        return PushCommand(action="disable")
    if match := _PUSH_TIME.match(arg):
        return PushCommand(action="time", time=match.group(1))
    return PushCommand(action="status")
