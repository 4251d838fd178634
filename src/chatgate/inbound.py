"""Normalize platform messages into :class:`InboundMessage`."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC
from typing import Any

import discord

from .types import (
    ImageElement,
    InboundMessage,
    MentionElement,
    MessageElement,
    QuoteElement,
    TextElement,
)

_DISCORD_MENTION = re.compile(r"<@!?(\d+)>")

_DISPATCHABLE_MESSAGE_TYPES = {
    discord.MessageType.default,
    discord.MessageType.reply,
}


def split_discord_mentions(content: str) -> list[MessageElement]:
    elements: list[MessageElement] = []
    cursor = 0
    for match in _DISCORD_MENTION.finditer(content):
        if match.start() > cursor:
            elements.append(TextElement(text=content[cursor : match.start()]))
        elements.append(MentionElement(user_id=match.group(1)))
        cursor = match.end()
    if cursor < len(content):
        elements.append(TextElement(text=content[cursor:]))
    return elements


def trim_text_elements(elements: list[MessageElement]) -> list[MessageElement]:
    """Strip leading whitespace of the first and trailing of the last text element.

    Text elements left empty are dropped; other elements keep their place.
    """
    texts = {i: el.text for i, el in enumerate(elements) if isinstance(el, TextElement)}
    order = list(texts)
    for index in order:
        texts[index] = texts[index].lstrip()
        if texts[index]:
            break
    for index in reversed(order):
        texts[index] = texts[index].rstrip()
        if texts[index]:
            break
    trimmed: list[MessageElement] = []
    for index, element in enumerate(elements):
        if index not in texts:
            trimmed.append(element)
        elif texts[index]:
            trimmed.append(TextElement(text=texts[index]))
    return trimmed


def text_content(elements: list[MessageElement]) -> str:
    return "".join(el.text for el in elements if isinstance(el, TextElement))


def from_discord_message(message: discord.Message, *, self_id: str) -> InboundMessage | None:
    """Convert a Discord message; ``None`` for bots, our own account and system messages.

    ``content`` holds only the text between mention tokens, so a leading
    ``<@bot>`` does not hide a ``#<n>`` prefix or a dice roll.
    """
    if message.author.bot or str(message.author.id) == self_id:
        return None
    if message.type not in _DISPATCHABLE_MESSAGE_TYPES:
        return None

    elements = trim_text_elements(split_discord_mentions(message.content or ""))
    reference = getattr(message, "reference", None)
    if reference is not None and reference.message_id:
        elements.insert(0, QuoteElement(message_id=str(reference.message_id)))
    for attachment in message.attachments:
        url = getattr(attachment, "url", "")
        content_type = getattr(attachment, "content_type", None) or ""
        if url and content_type.startswith("image/"):
            elements.append(ImageElement(url=url))

    created_at = message.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)

    guild = message.guild
    return InboundMessage(
        platform="discord",
        self_id=self_id,
        user_id=str(message.author.id),
        guild_id=str(guild.id) if guild is not None else None,
        channel_id=str(message.channel.id),
        message_id=str(message.id),
        content=text_content(elements),
        elements=tuple(elements),
        timestamp=int(created_at.timestamp() * 1000),
        extras={"author_name": message.author.display_name},
    )


def from_onebot_event(event: Mapping[str, Any]) -> InboundMessage | None:
    """Convert a OneBot v11 (QQ) message event; ``None`` for other post types."""
    if event.get("post_type") != "message":
        return None
    message_type = event.get("message_type")
    if message_type not in {"group", "private"}:
        return None

    elements: list[MessageElement] = []
    segments = event.get("message")
    if isinstance(segments, str):
        segments = [{"type": "text", "data": {"text": segments}}]
    for segment in segments or []:
        if not isinstance(segment, Mapping):
            continue
        data = segment.get("data")
        data = data if isinstance(data, Mapping) else {}
        kind = segment.get("type")
        if kind == "text":
            text = str(data.get("text", ""))
            if text:
                elements.append(TextElement(text=text))
        elif kind == "at":
            target = str(data.get("qq", "")).strip()
            if target:
                elements.append(MentionElement(user_id=target))
        elif kind == "image":
            url = str(data.get("url") or data.get("file") or "")
            if url:
                elements.append(ImageElement(url=url))
        elif kind == "reply":
            reply_id = str(data.get("id", "")).strip()
            if reply_id:
                elements.append(QuoteElement(message_id=reply_id))

    elements = trim_text_elements(elements)
    group_id = event.get("group_id") if message_type == "group" else None
    channel_id = group_id if group_id is not None else event.get("user_id")
    return InboundMessage(
        platform="qq",
        self_id=str(event.get("self_id", "")),
        user_id=str(event.get("user_id", "")),
        guild_id=str(group_id) if group_id is not None else None,
        channel_id=str(channel_id or ""),
        message_id=str(event.get("message_id", "")),
        content=text_content(elements),
        elements=tuple(elements),
        timestamp=int(event.get("time", 0)) * 1000,
        extras={"message_type": message_type},
    )
