"""Dice roll syntax (``2d6``, ``.rd 1d20``)."""

from __future__ import annotations

import random
import re
import secrets
from dataclasses import dataclass

_DICE = re.compile(
    r"^(?:(?:\.rd?|/roll)\s*)?(\d{1,2})\s*[dD]\s*(\d{1,3})$", re.ASCII | re.IGNORECASE
)

MAX_DICE_COUNT = 10
MAX_DICE_SIDES = 100


@dataclass(frozen=True, slots=True)
class DiceSpec:
    count: int
    sides: int

    @property
    def notation(self) -> str:
        return f"{self.count}d{self.sides}"


@dataclass(frozen=True, slots=True)
class DiceResult:
    rolls: tuple[int, ...]
    total: int


def parse_dice_spec(text: str) -> DiceSpec | None:
    match = _DICE.match(text.strip())
    if match is None:
        return None
    count = int(match.group(1))
    sides = int(match.group(2))
    if not 1 <= count <= MAX_DICE_COUNT:
        return None
    if not 1 <= sides <= MAX_DICE_SIDES:
        return None
    return DiceSpec(count=count, sides=sides)


def roll_dice(spec: DiceSpec, rng: random.Random | None = None) -> DiceResult:
    rng = rng or secrets.SystemRandom()
    rolls = tuple(rng.randint(1, spec.sides) for _ in range(spec.count))
    return DiceResult(rolls=rolls, total=sum(rolls))


def format_dice_result(spec: DiceSpec, result: DiceResult) -> str:
    if len(result.rolls) <= 1:
        value = result.rolls[0] if result.rolls else 0
        return f"{spec.notation} = {value}"
    joined = " + ".join(str(roll) for roll in result.rolls)
    return f"{spec.notation} = {joined} = {result.total}"
