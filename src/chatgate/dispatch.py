"""Route each inbound message to exactly one verdict: dice, enqueue or drop."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import ClassVar

from .commands import ManagementCommand, is_always_enqueue, parse_management_command
from .dice import DiceSpec, parse_dice_spec
from .logging import get_logger
from .paths import ensure_safe_path_segment
from .session.models import build_session_id
from .trigger import (
    effective_keywords,
    extract_session_key,
    resolve_trigger,
    strip_keyword_prefix,
)
from .types import DEFAULT_GLOBAL_ECHO_RATE, GroupConfig, InboundMessage, RouterSnapshot

logger = get_logger(__name__)

DROP_GROUP_DISABLED = "group_disabled"
DROP_SESSION_KEY_EXCEEDS_MAX = "session_key_exceeds_max_sessions"
DROP_TRIGGER_NOT_MATCHED = "trigger_not_matched"

DIRECT_MESSAGE_GROUP_ID = "0"


@dataclass(frozen=True, slots=True)
class DiceVerdict:
    kind: ClassVar[str] = "dice"

    key: int
    dice: DiceSpec
    message: InboundMessage


@dataclass(frozen=True, slots=True)
class EnqueueVerdict:
    kind: ClassVar[str] = "enqueue"

    key: int
    message: InboundMessage
    content_hash: str
    content_length: int
    command: ManagementCommand | None = None


@dataclass(frozen=True, slots=True)
class DropVerdict:
    kind: ClassVar[str] = "drop"

    reason: str
    key: int = 0
    max_sessions: int | None = None
    # only set for trigger_not_matched, consumed by the passive echo feature
    echo_rate: int | None = None


Verdict = DiceVerdict | EnqueueVerdict | DropVerdict


@dataclass(frozen=True, slots=True)
class NormalizedMessage:
    key: int
    content: str
    message: InboundMessage


@dataclass(frozen=True, slots=True)
class DispatchEnvelope:
    """Validated identifiers for a message, safe to use in filesystem paths."""

    group_id: str
    bot_id: str
    user_id: str

    def session_id(self, key: int) -> str:
        return build_session_id(self.user_id, key)


def build_envelope(
    message: InboundMessage, *, force_group_id: str | None = None
) -> DispatchEnvelope:
    """Resolve the group a message belongs to and validate every id.

    Direct messages (no guild) share the pseudo-group ``"0"``.
    """
    if not message.guild_id:
        group_id = DIRECT_MESSAGE_GROUP_ID
    else:
        group_id = force_group_id or message.guild_id
    return DispatchEnvelope(
        group_id=ensure_safe_path_segment(group_id, "groupId"),
        bot_id=ensure_safe_path_segment(message.self_id.strip(), "botId"),
        user_id=ensure_safe_path_segment(message.user_id.strip(), "userId"),
    )


def resolve_echo_rate(
    bot_echo_rate: int | None, group_echo_rate: int | None, global_echo_rate: int
) -> int:
    if bot_echo_rate is not None:
        return bot_echo_rate
    if group_echo_rate is not None:
        return group_echo_rate
    return global_echo_rate


def content_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:12]


def normalize_message(message: InboundMessage, keywords: list[str]) -> NormalizedMessage:
    """Strip wake words around the ``#<n>`` prefix and trim the rest.

    Accepts both ``"bot #1 hi"`` and ``"#1 bot hi"``.
    """
    content, prefix_length = strip_keyword_prefix(message.content, keywords)
    current = message.with_content(content, prefix_length)

    session_key = extract_session_key(current.content)
    current = current.with_content(session_key.content, session_key.prefix_length)

    content, prefix_length = strip_keyword_prefix(current.content, keywords)
    current = current.with_content(content, prefix_length)

    leading = len(current.content) - len(current.content.lstrip())
    current = current.with_content(current.content.strip(), leading)
    return NormalizedMessage(key=session_key.key, content=current.content, message=current)


class DispatchPlanner:
    """Turns a message plus its group's configuration into a routing verdict.

    Dice rolls and the always-enqueue utility commands are decided before the
    trigger resolver runs, so they work without a mention in ``mention`` mode.
    Every path that would touch a session still honours ``maxSessions``.
    """

    def __init__(self, snapshot: RouterSnapshot | None = None) -> None:
        self._snapshot = snapshot

    @property
    def snapshot(self) -> RouterSnapshot | None:
        return self._snapshot

    def update_snapshot(self, snapshot: RouterSnapshot | None) -> None:
        self._snapshot = snapshot

    def plan(self, message: InboundMessage, group_config: GroupConfig) -> Verdict:
        if not group_config.enabled:
            return self._drop(message, DROP_GROUP_DISABLED)

        keywords = effective_keywords(group_config, self._snapshot, message.self_id)
        normalized = normalize_message(message, keywords)
        key = normalized.key

        dice = parse_dice_spec(normalized.content)
        if dice is not None:
            if not group_config.is_valid_key(key):
                return self._drop_key(message, key, group_config)
            logger.info(
                "dispatch.dice",
                message_id=message.message_id,
                user_id=message.user_id,
                key=key,
                dice=dice.notation,
            )
            return DiceVerdict(key=key, dice=dice, message=normalized.message)

        if is_always_enqueue(normalized.content):
            if not group_config.is_valid_key(key):
                return self._drop_key(message, key, group_config)
            return self._enqueue(normalized, command=None)

        decision = resolve_trigger(message, group_config, self._snapshot)
        if not decision.matched:
            return self._drop(
                message,
                DROP_TRIGGER_NOT_MATCHED,
                key=key,
                echo_rate=self._echo_rate(message, group_config),
                trigger_reason=decision.reason,
            )
        if not group_config.is_valid_key(key):
            return self._drop_key(message, key, group_config)

        command = parse_management_command(normalized.content)
        return self._enqueue(normalized, command=command)

    def _echo_rate(self, message: InboundMessage, group_config: GroupConfig) -> int:
        snapshot = self._snapshot
        if snapshot is None:
            return resolve_echo_rate(None, group_config.echo_rate, DEFAULT_GLOBAL_ECHO_RATE)
        bot_config = snapshot.bot_config(message.self_id)
        return resolve_echo_rate(
            bot_config.echo_rate if bot_config is not None else None,
            group_config.echo_rate,
            snapshot.global_echo_rate,
        )

    def _enqueue(
        self, normalized: NormalizedMessage, *, command: ManagementCommand | None
    ) -> EnqueueVerdict:
        message = normalized.message
        digest = content_digest(normalized.content)
        logger.info(
            "dispatch.enqueue",
            message_id=message.message_id,
            channel_id=message.channel_id,
            user_id=message.user_id,
            self_id=message.self_id,
            key=normalized.key,
            content_hash=digest,
            content_length=len(normalized.content),
            command=type(command).__name__ if command is not None else None,
        )
        return EnqueueVerdict(
            key=normalized.key,
            message=message,
            content_hash=digest,
            content_length=len(normalized.content),
            command=command,
        )

    def _drop_key(
        self, message: InboundMessage, key: int, group_config: GroupConfig
    ) -> DropVerdict:
        return self._drop(
            message,
            DROP_SESSION_KEY_EXCEEDS_MAX,
            key=key,
            max_sessions=group_config.max_sessions,
        )

    @staticmethod
    def _drop(
        message: InboundMessage,
        reason: str,
        *,
        key: int = 0,
        max_sessions: int | None = None,
        echo_rate: int | None = None,
        trigger_reason: str | None = None,
    ) -> DropVerdict:
        logger.debug(
            "dispatch.drop",
            reason=reason,
            trigger_reason=trigger_reason,
            message_id=message.message_id,
            user_id=message.user_id,
            key=key,
        )
        return DropVerdict(
            reason=reason, key=key, max_sessions=max_sessions, echo_rate=echo_rate
        )
