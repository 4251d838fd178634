"""Platform-neutral message and routing configuration types."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Self

import msgspec

from .errors import InvalidConfig

TriggerMode = Literal["mention", "keyword"]
EchoRate = Annotated[int, msgspec.Meta(ge=0, le=100)]
DEFAULT_GLOBAL_ECHO_RATE = 30


class TextElement(msgspec.Struct, frozen=True, tag="text", tag_field="type"):
    text: str


class MentionElement(
    msgspec.Struct, frozen=True, tag="mention", tag_field="type", rename="camel"
):
    user_id: str


class ImageElement(msgspec.Struct, frozen=True, tag="image", tag_field="type"):
    url: str


class QuoteElement(
    msgspec.Struct, frozen=True, tag="quote", tag_field="type", rename="camel"
):
    message_id: str


MessageElement = TextElement | MentionElement | ImageElement | QuoteElement


class InboundMessage(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """One chat message as handed over by a platform adapter.

    ``elements`` keeps mention structure separate from ``content`` because
    mention syntax in raw text differs per platform.
    """

    platform: str
    self_id: str
    user_id: str
    channel_id: str
    message_id: str
    content: str
    guild_id: str | None = None
    elements: tuple[MessageElement, ...] = ()
    timestamp: int = 0  # epoch milliseconds
    extras: dict[str, Any] = msgspec.field(default_factory=dict)

    def mentioned_user_ids(self) -> list[str]:
        return [el.user_id for el in self.elements if isinstance(el, MentionElement)]

    def with_content(self, content: str, prefix_length: int = 0) -> InboundMessage:
        """Return a copy with new content and ``prefix_length`` chars cut from the text elements."""
        if content == self.content:
            return self
        elements = _strip_prefix_from_elements(self.elements, prefix_length)
        return msgspec.structs.replace(self, content=content, elements=elements)


class KeywordRouting(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    enable_global: bool = True
    enable_group: bool = True
    enable_bot: bool = True

    def intersect(self, other: KeywordRouting | None) -> KeywordRouting:
        """Field-wise AND; a bot may narrow the group's routing, never widen it."""
        if other is None:
            return self
        return KeywordRouting(
            enable_global=self.enable_global and other.enable_global,
            enable_group=self.enable_group and other.enable_group,
            enable_bot=self.enable_bot and other.enable_bot,
        )


class GroupConfig(
    msgspec.Struct, kw_only=True, rename="camel", forbid_unknown_fields=False
):
    """Per-group settings, loaded from the group's config file by the caller."""

    enabled: bool = True
    trigger_mode: TriggerMode = "mention"
    keywords: list[str] = msgspec.field(default_factory=list)
    keyword_routing: KeywordRouting = msgspec.field(default_factory=KeywordRouting)
    admin_users: list[str] = msgspec.field(default_factory=list)
    max_sessions: int = 1
    model: str | None = None
    echo_rate: EchoRate | None = None

    def __post_init__(self) -> None:
        validate_max_sessions(self.max_sessions)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> Self:
        return _convert(raw, cls, "group config")

    def is_valid_key(self, key: int) -> bool:
        return 0 <= key < self.max_sessions


class BotKeywordConfig(
    msgspec.Struct, kw_only=True, rename="camel", forbid_unknown_fields=False
):
    """Keywords owned by one bot identity that shares groups with other bots."""

    keywords: list[str] = msgspec.field(default_factory=list)
    keyword_routing: KeywordRouting = msgspec.field(default_factory=KeywordRouting)
    echo_rate: EchoRate | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> Self:
        return _convert(raw, cls, "bot config")


class RouterSnapshot(
    msgspec.Struct, kw_only=True, rename="camel", forbid_unknown_fields=False
):
    """Process-wide keyword routing state: global keywords and every bot's keywords."""

    global_keywords: list[str] = msgspec.field(default_factory=list)
    global_echo_rate: EchoRate = DEFAULT_GLOBAL_ECHO_RATE
    bot_configs: dict[str, BotKeywordConfig] = msgspec.field(default_factory=dict)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> Self:
        return _convert(raw, cls, "router snapshot")

    def bot_config(self, bot_id: str) -> BotKeywordConfig | None:
        return self.bot_configs.get(bot_id)


def validate_max_sessions(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidConfig("maxSessions must be a positive integer")
    return value


def _convert(raw: Mapping[str, Any] | None, type_: type[Any], label: str) -> Any:
    try:
        return msgspec.convert(dict(raw or {}), type_)
    except msgspec.ValidationError as exc:
        raise InvalidConfig(f"invalid {label}: {exc}") from exc


def _strip_prefix_from_elements(
    elements: tuple[MessageElement, ...], prefix_length: int
) -> tuple[MessageElement, ...]:
    if prefix_length <= 0:
        return elements
    remaining = prefix_length
    updated: list[MessageElement] = []
    for element in elements:
        if remaining <= 0 or not isinstance(element, TextElement):
            updated.append(element)
            continue
        if len(element.text) <= remaining:
            remaining -= len(element.text)
            continue
        updated.append(TextElement(text=element.text[remaining:]))
        remaining = 0
    return tuple(updated)
