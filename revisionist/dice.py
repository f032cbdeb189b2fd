"""D20 dice engine.

Tier table (fixed):
  1-2    Critical Failure
  3-7    Failure
  8-13   Neutral
  14-18  Success
  19-20  Critical Success
"""

from __future__ import annotations

import random
from typing import Protocol

from revisionist.models import (
    CRITICAL_FAILURE,
    CRITICAL_SUCCESS,
    FAILURE,
    NEUTRAL,
    SUCCESS,
    DiceOutcome,
    DiceResult,
)

# (max_roll, outcome); max is inclusive, checked in order
_TIERS: list[tuple[int, DiceOutcome]] = [
    (2, CRITICAL_FAILURE),
    (7, FAILURE),
    (13, NEUTRAL),
    (18, SUCCESS),
    (20, CRITICAL_SUCCESS),
]


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...


def categorize_roll(roll: int) -> DiceOutcome:
    """Map a 1-20 roll to its outcome tier."""
    if roll < 1 or roll > 20:
        raise ValueError(f"D20 roll must be between 1 and 20, got {roll}")
    for max_roll, outcome in _TIERS:
        if roll <= max_roll:
            return outcome
    raise AssertionError("unreachable")


def roll_d20(rng: RandomSource | None = None) -> DiceResult:
    """Roll a D20 and return the roll with its outcome tier.

    `rng` defaults to the `random` module; tests pass a seeded
    random.Random or a stub with a fixed randint().
    """
    source = rng if rng is not None else random
    roll = source.randint(1, 20)
    return DiceResult(roll=roll, outcome=categorize_roll(roll))
