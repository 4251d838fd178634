"""Tests for the dispatch planner."""

from __future__ import annotations

import hashlib

import pytest

from chatgate.commands import ModelCommand, ResetCommand
from chatgate.dice import DiceSpec
from chatgate.dispatch import (
    DIRECT_MESSAGE_GROUP_ID,
    DROP_GROUP_DISABLED,
    DROP_SESSION_KEY_EXCEEDS_MAX,
    DROP_TRIGGER_NOT_MATCHED,
    DiceVerdict,
    DispatchPlanner,
    DropVerdict,
    EnqueueVerdict,
    build_envelope,
    normalize_message,
    resolve_echo_rate,
)
from chatgate.errors import PathSegmentUnsafe
from chatgate.types import (
    BotKeywordConfig,
    GroupConfig,
    InboundMessage,
    MentionElement,
    MessageElement,
    RouterSnapshot,
    TextElement,
)


def _message(
    content: str,
    *,
    self_id: str = "bot-a",
    user_id: str = "user-1",
    guild_id: str | None = "guild-1",
    elements: list[MessageElement] | None = None,
) -> InboundMessage:
    return InboundMessage(
        platform="qq",
        self_id=self_id,
        user_id=user_id,
        guild_id=guild_id,
        channel_id="channel-1",
        message_id="msg-1",
        content=content,
        elements=tuple(elements) if elements is not None else (TextElement(text=content),),
    )


def _mentioned(content: str, *, self_id: str = "bot-a") -> InboundMessage:
    return _message(
        content,
        self_id=self_id,
        elements=[MentionElement(user_id=self_id), TextElement(text=content)],
    )


_TWO_BOTS = RouterSnapshot(
    bot_configs={
        "bot-a": BotKeywordConfig(keywords=["alpha"]),
        "bot-b": BotKeywordConfig(keywords=["beta", "d20"]),
    }
)


class TestDice:
    def test_dice_without_mention(self) -> None:
        verdict = DispatchPlanner().plan(_message("2d100"), GroupConfig())
        assert isinstance(verdict, DiceVerdict)
        assert verdict.kind == "dice"
        assert verdict.dice == DiceSpec(count=2, sides=100)
        assert verdict.key == 0

    def test_roll_prefix(self) -> None:
        verdict = DispatchPlanner().plan(_message(".rd 2d6"), GroupConfig())
        assert isinstance(verdict, DiceVerdict)

    def test_dice_with_session_key_in_range(self) -> None:
        verdict = DispatchPlanner().plan(_message("#0 10d20"), GroupConfig())
        assert isinstance(verdict, DiceVerdict)
        assert verdict.dice == DiceSpec(count=10, sides=20)

    def test_dice_honours_max_sessions(self) -> None:
        verdict = DispatchPlanner().plan(_message("#2 2d6"), GroupConfig(max_sessions=1))
        assert isinstance(verdict, DropVerdict)
        assert verdict.reason == DROP_SESSION_KEY_EXCEEDS_MAX
        assert verdict.key == 2
        assert verdict.max_sessions == 1

    def test_out_of_range_dice_is_not_a_roll(self) -> None:
        verdict = DispatchPlanner().plan(_message("11d6"), GroupConfig())
        assert isinstance(verdict, DropVerdict)
        assert verdict.reason == DROP_TRIGGER_NOT_MATCHED

    def test_dice_precedes_keyword_ownership(self) -> None:
        planner = DispatchPlanner(_TWO_BOTS)
        config = GroupConfig(trigger_mode="keyword")
        verdict = planner.plan(_message("1d20", self_id="bot-a"), config)
        assert isinstance(verdict, DiceVerdict)


class TestAlwaysEnqueue:
    @pytest.mark.parametrize("content", ["/nano a cute cat", "/polish draft", "/QUEST"])
    def test_enqueued_in_mention_mode(self, content: str) -> None:
        verdict = DispatchPlanner().plan(_message(content), GroupConfig(trigger_mode="mention"))
        assert isinstance(verdict, EnqueueVerdict)
        assert verdict.kind == "enqueue"
        assert verdict.command is None

    def test_prefix_must_be_a_whole_word(self) -> None:
        verdict = DispatchPlanner().plan(_message("/nanobot hi"), GroupConfig())
        assert isinstance(verdict, DropVerdict)
        assert verdict.reason == DROP_TRIGGER_NOT_MATCHED

    def test_honours_max_sessions(self) -> None:
        verdict = DispatchPlanner().plan(_message("#3 /nano x"), GroupConfig(max_sessions=2))
        assert isinstance(verdict, DropVerdict)
        assert verdict.reason == DROP_SESSION_KEY_EXCEEDS_MAX
        assert verdict.key == 3

    def test_precedes_keyword_ownership(self) -> None:
        planner = DispatchPlanner(_TWO_BOTS)
        config = GroupConfig(trigger_mode="keyword")
        verdict = planner.plan(_message("/nano beta", self_id="bot-a"), config)
        assert isinstance(verdict, EnqueueVerdict)


class TestTrigger:
    def test_mention_mode_without_mention_drops_with_echo_rate(self) -> None:
        verdict = DispatchPlanner().plan(_message("hello"), GroupConfig())
        assert isinstance(verdict, DropVerdict)
        assert verdict.kind == "drop"
        assert verdict.reason == DROP_TRIGGER_NOT_MATCHED
        assert verdict.echo_rate == 30

    def test_echo_rate_prefers_bot_then_group(self) -> None:
        snapshot = RouterSnapshot(
            global_echo_rate=20,
            bot_configs={"bot-a": BotKeywordConfig(echo_rate=5)},
        )
        planner = DispatchPlanner(snapshot)
        group = GroupConfig(echo_rate=10)
        assert planner.plan(_message("hi", self_id="bot-a"), group).echo_rate == 5
        assert planner.plan(_message("hi", self_id="bot-c"), group).echo_rate == 10
        assert planner.plan(_message("hi", self_id="bot-c"), GroupConfig()).echo_rate == 20

    def test_mention_enqueues_with_session_key(self) -> None:
        verdict = DispatchPlanner().plan(_mentioned("#1 hello"), GroupConfig(max_sessions=2))
        assert isinstance(verdict, EnqueueVerdict)
        assert verdict.key == 1
        assert verdict.message.content == "hello"
        assert verdict.message.elements == (
            MentionElement(user_id="bot-a"),
            TextElement(text="hello"),
        )
        assert verdict.content_length == 5
        assert verdict.content_hash == hashlib.sha256(b"hello").hexdigest()[:12]

    def test_mention_with_key_out_of_range(self) -> None:
        verdict = DispatchPlanner().plan(_mentioned("#1 hello"), GroupConfig(max_sessions=1))
        assert isinstance(verdict, DropVerdict)
        assert verdict.reason == DROP_SESSION_KEY_EXCEEDS_MAX
        assert verdict.max_sessions == 1

    def test_keyword_ownership_between_bots(self) -> None:
        planner = DispatchPlanner(_TWO_BOTS)
        config = GroupConfig(trigger_mode="keyword")

        dropped = planner.plan(_message("hey beta", self_id="bot-a"), config)
        assert isinstance(dropped, DropVerdict)
        assert dropped.reason == DROP_TRIGGER_NOT_MATCHED

        enqueued = planner.plan(_message("hey beta", self_id="bot-b"), config)
        assert isinstance(enqueued, EnqueueVerdict)

    def test_management_command_is_parsed(self) -> None:
        verdict = DispatchPlanner().plan(_mentioned("reset all"), GroupConfig())
        assert isinstance(verdict, EnqueueVerdict)
        assert verdict.command == ResetCommand(scope="all")

    def test_model_command_after_wake_word(self) -> None:
        config = GroupConfig(trigger_mode="keyword", keywords=["bot"])
        verdict = DispatchPlanner().plan(_message("bot, model gpt-x"), config)
        assert isinstance(verdict, EnqueueVerdict)
        assert verdict.command == ModelCommand(model="gpt-x")

    def test_disabled_group_drops_everything(self) -> None:
        verdict = DispatchPlanner().plan(_mentioned("2d6"), GroupConfig(enabled=False))
        assert isinstance(verdict, DropVerdict)
        assert verdict.reason == DROP_GROUP_DISABLED

    def test_update_snapshot(self) -> None:
        planner = DispatchPlanner()
        config = GroupConfig(trigger_mode="keyword")
        assert isinstance(planner.plan(_message("alpha"), config), DropVerdict)
        planner.update_snapshot(_TWO_BOTS)
        assert planner.snapshot is _TWO_BOTS
        assert isinstance(planner.plan(_message("alpha"), config), EnqueueVerdict)


class TestNormalizeMessage:
    def test_wake_word_before_key(self) -> None:
        normalized = normalize_message(_message("bot #1 hello"), ["bot"])
        assert normalized.key == 1
        assert normalized.content == "hello"
        assert normalized.message.elements == (TextElement(text="hello"),)

    def test_wake_word_after_key(self) -> None:
        normalized = normalize_message(_message("#1 bot hello"), ["bot"])
        assert (normalized.key, normalized.content) == (1, "hello")

    def test_malformed_key_passes_through(self) -> None:
        normalized = normalize_message(_message("#-1 hello"), [])
        assert (normalized.key, normalized.content) == (0, "#-1 hello")

    def test_content_is_trimmed(self) -> None:
        normalized = normalize_message(_message("  hello  "), [])
        assert normalized.content == "hello"


class TestEnvelope:
    def test_group_message(self) -> None:
        envelope = build_envelope(_message("hi"))
        assert envelope.group_id == "guild-1"
        assert envelope.session_id(2) == "user-1-2"

    def test_direct_message(self) -> None:
        envelope = build_envelope(_message("hi", guild_id=None), force_group_id="other")
        assert envelope.group_id == DIRECT_MESSAGE_GROUP_ID

    def test_forced_group(self) -> None:
        envelope = build_envelope(_message("hi"), force_group_id="shared")
        assert envelope.group_id == "shared"

    def test_unsafe_user_id(self) -> None:
        with pytest.raises(PathSegmentUnsafe):
            build_envelope(_message("hi", user_id="../escape"))


def test_resolve_echo_rate() -> None:
    assert resolve_echo_rate(None, None, 30) == 30
    assert resolve_echo_rate(None, 0, 30) == 0
    assert resolve_echo_rate(7, 0, 30) == 7
