"""Decide whether a bot should react to a message.

Precedence, first match wins:

1. a mention of the bot itself (element or raw platform token) always triggers,
   whatever the trigger mode or keyword routing says;
2. ``mention`` mode refuses everything else;
3. global and group keywords trigger when the effective routing allows them;
4. bot keywords trigger only for the bot that owns the matching keyword, so
   several bots sharing a group do not all answer the same wake word.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable
from dataclasses import dataclass

from .logging import get_logger
from .types import GroupConfig, InboundMessage, KeywordRouting, RouterSnapshot

logger = get_logger(__name__)

_SESSION_KEY_PREFIX = re.compile(r"^(\s*#(\d+))(?:\s|$)", re.ASCII)
_KEYWORD_SEPARATORS = " \t\r\n,，:：、"


@dataclass(frozen=True, slots=True)
class TriggerDecision:
    matched: bool
    reason: str

    def __bool__(self) -> bool:
        return self.matched


@dataclass(frozen=True, slots=True)
class SessionKey:
    """Result of parsing an optional ``#<n>`` session slot prefix."""

    key: int
    content: str
    prefix_length: int


def normalize_keywords(keywords: Iterable[str] | None) -> list[str]:
    if not keywords:
        return []
    return [kw.strip() for kw in keywords if isinstance(kw, str) and kw.strip()]


def matches_keywords(content: str, keywords: Iterable[str] | None) -> bool:
    """Case-insensitive substring match of any non-empty keyword."""
    normalized = normalize_keywords(keywords)
    if not normalized:
        return False
    lowered = content.lower()
    return any(kw.lower() in lowered for kw in normalized)


@functools.lru_cache(maxsize=256)
def _mention_pattern(platform: str, self_id: str) -> re.Pattern[str] | None:
    escaped = re.escape(self_id)
    if platform == "discord":
        return re.compile(rf"<@!?{escaped}>")
    if platform in {"qq", "onebot"}:
        return re.compile(rf"\[CQ:at,qq={escaped}(?:,[^\]]*)?\]")
    return None


def mentions_self(message: InboundMessage) -> bool:
    self_id = message.self_id.strip()
    if not self_id:
        return False
    if self_id in message.mentioned_user_ids():
        return True
    pattern = _mention_pattern(message.platform, self_id)
    return pattern is not None and pattern.search(message.content) is not None


def effective_routing(
    group_config: GroupConfig, snapshot: RouterSnapshot | None, self_id: str
) -> KeywordRouting:
    bot_config = snapshot.bot_config(self_id) if snapshot is not None else None
    bot_routing = bot_config.keyword_routing if bot_config is not None else None
    return group_config.keyword_routing.intersect(bot_routing)


def keyword_owners(content: str, snapshot: RouterSnapshot | None) -> set[str]:
    """Return the ids of every registered bot whose own keywords match ``content``."""
    if snapshot is None:
        return set()
    return {
        bot_id
        for bot_id, config in snapshot.bot_configs.items()
        if matches_keywords(content, config.keywords)
    }


def resolve_trigger(
    message: InboundMessage,
    group_config: GroupConfig,
    snapshot: RouterSnapshot | None = None,
) -> TriggerDecision:
    if mentions_self(message):
        return TriggerDecision(True, "self_mention")
    if group_config.trigger_mode == "mention":
        return TriggerDecision(False, "mention_required")

    routing = effective_routing(group_config, snapshot, message.self_id)
    global_keywords = snapshot.global_keywords if snapshot is not None else []
    if routing.enable_global and matches_keywords(message.content, global_keywords):
        return TriggerDecision(True, "global_keyword")
    if routing.enable_group and matches_keywords(message.content, group_config.keywords):
        return TriggerDecision(True, "group_keyword")
    if not routing.enable_bot:
        return TriggerDecision(False, "bot_keywords_disabled")

    owners = keyword_owners(message.content, snapshot)
    if not owners:
        return TriggerDecision(False, "no_keyword_match")
    if message.self_id in owners:
        return TriggerDecision(True, "bot_keyword")
    logger.debug(
        "trigger.keyword_owned_elsewhere",
        self_id=message.self_id,
        owners=sorted(owners),
    )
    return TriggerDecision(False, "keyword_owned_by_other_bot")


def should_enqueue(
    message: InboundMessage,
    group_config: GroupConfig,
    snapshot: RouterSnapshot | None = None,
) -> bool:
    return resolve_trigger(message, group_config, snapshot).matched


def effective_keywords(
    group_config: GroupConfig, snapshot: RouterSnapshot | None, self_id: str
) -> list[str]:
    """Keywords that may wake the bot ``self_id`` in this group."""
    routing = effective_routing(group_config, snapshot, self_id)
    keywords: list[str] = []
    if routing.enable_global and snapshot is not None:
        keywords.extend(snapshot.global_keywords)
    if routing.enable_group:
        keywords.extend(group_config.keywords)
    if routing.enable_bot and snapshot is not None:
        bot_config = snapshot.bot_config(self_id)
        if bot_config is not None:
            keywords.extend(bot_config.keywords)
    return list(dict.fromkeys(normalize_keywords(keywords)))


def strip_keyword_prefix(content: str, keywords: Iterable[str]) -> tuple[str, int]:
    """Remove a leading wake word and the separators after it.

    Returns the remaining content and the number of characters removed.
    """
    stripped = content.lstrip()
    lowered = stripped.lower()
    for keyword in sorted(normalize_keywords(keywords), key=len, reverse=True):
        if not lowered.startswith(keyword.lower()):
            continue
        following = stripped[len(keyword) : len(keyword) + 1]
        if _is_word_char(keyword[-1]) and _is_word_char(following):
            # "bot" must not eat the start of "bottle"
            continue
        rest = stripped[len(keyword) :].lstrip(_KEYWORD_SEPARATORS)
        return rest, len(content) - len(rest)
    return content, 0


def extract_session_key(text: str) -> SessionKey:
    """Parse a leading ``#<n>`` slot selector.

    One whitespace character after the digits is consumed along with the
    prefix. A malformed prefix (``#-1``, ``#x``) selects slot 0 and the text is
    passed through untouched so later matchers still see it.
    """
    match = _SESSION_KEY_PREFIX.match(text)
    if match is None:
        return SessionKey(key=0, content=text, prefix_length=0)
    key = int(match.group(2))
    prefix_length = match.end()
    return SessionKey(key=key, content=text[prefix_length:], prefix_length=prefix_length)


def _is_word_char(char: str) -> bool:
    return len(char) == 1 and char.isascii() and (char.isalnum() or char == "_")
