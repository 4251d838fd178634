"""Tests for dice parsing and formatting."""

from __future__ import annotations

import random

import pytest

from chatgate.dice import DiceResult, DiceSpec, format_dice_result, parse_dice_spec, roll_dice


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2d6", DiceSpec(count=2, sides=6)),
        ("1D20", DiceSpec(count=1, sides=20)),
        ("10d100", DiceSpec(count=10, sides=100)),
        (" 3 d 4 ", DiceSpec(count=3, sides=4)),
        (".r1d6", DiceSpec(count=1, sides=6)),
        (".rd 2d8", DiceSpec(count=2, sides=8)),
        ("/roll 4d6", DiceSpec(count=4, sides=6)),
    ],
)
def test_parse_dice_spec(text: str, expected: DiceSpec) -> None:
    assert parse_dice_spec(text) == expected


@pytest.mark.parametrize(
    "text", ["", "d6", "0d6", "11d6", "2d0", "2d101", "2d6 please", "roll 2d6", "2x6"]
)
def test_parse_dice_spec_rejects(text: str) -> None:
    assert parse_dice_spec(text) is None


def test_roll_dice_stays_in_range() -> None:
    spec = DiceSpec(count=10, sides=6)
    result = roll_dice(spec, random.Random(1234))
    assert len(result.rolls) == 10
    assert all(1 <= roll <= 6 for roll in result.rolls)
    assert result.total == sum(result.rolls)


def test_roll_dice_default_rng() -> None:
    result = roll_dice(DiceSpec(count=1, sides=1))
    assert result == DiceResult(rolls=(1,), total=1)


def test_spec_notation() -> None:
    assert DiceSpec(count=3, sides=12).notation == "3d12"


def test_format_dice_result() -> None:
    assert (
        format_dice_result(DiceSpec(2, 6), DiceResult(rolls=(3, 4), total=7))
        == "2d6 = 3 + 4 = 7"
    )
    assert format_dice_result(DiceSpec(1, 20), DiceResult(rolls=(12,), total=12)) == (
        "1d20 = 12"
    )
