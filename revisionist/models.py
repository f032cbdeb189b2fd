"""Core domain models.

The dice engine, state machine, orchestrator and summary analyzer all operate
on these types. Pydantic is used for validation and serialisation at every
data boundary.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Sender = Literal["user", "ai", "system"]

GameStatus = Literal["playing", "victory", "defeat"]

Difficulty = Literal["easy", "medium", "hard"]

DiceOutcome = Literal[
    "Critical Failure",
    "Failure",
    "Neutral",
    "Success",
    "Critical Success",
]

CRITICAL_FAILURE: DiceOutcome = "Critical Failure"
FAILURE: DiceOutcome = "Failure"
NEUTRAL: DiceOutcome = "Neutral"
SUCCESS: DiceOutcome = "Success"
CRITICAL_SUCCESS: DiceOutcome = "Critical Success"

MAX_MESSAGES = 5
MAX_MESSAGE_LENGTH = 160
TARGET_PROGRESS = 100

_ENRICHMENT_FIELDS = (
    "dice_roll",
    "dice_outcome",
    "character_action",
    "timeline_impact",
    "progress_change",
)


class Message(BaseModel):
    """A single entry in a game's append-only message history."""

    model_config = ConfigDict(frozen=True)

    text: str
    sender: Sender
    timestamp: datetime

    # Dual-layer enrichment, AI messages only
    dice_roll: int | None = Field(default=None, ge=1, le=20)
    dice_outcome: DiceOutcome | None = None
    character_action: str | None = None
    timeline_impact: str | None = None
    progress_change: int | None = None

    @model_validator(mode="after")
    def _check_enrichment(self) -> Message:
        present = [getattr(self, name) is not None for name in _ENRICHMENT_FIELDS]
        if any(present) and self.sender != "ai":
            raise ValueError(f"{self.sender} messages cannot carry dice or timeline data")
        if any(present) and not all(present):
            raise ValueError("dice and timeline fields must be set together")
        return self

    @property
    def is_enriched(self) -> bool:
        return self.dice_roll is not None


class DiceResult(BaseModel):
    roll: int = Field(ge=1, le=20)
    outcome: DiceOutcome


class CharacterResponse(BaseModel):
    """What the historical figure says (message) and decides to do (action)."""

    message: str = Field(min_length=1)
    action: str = Field(min_length=1)


class TimelineEvaluation(BaseModel):
    impact: str = Field(min_length=1)
    progress_change: int


class GameObjective(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    success_criteria: str
    historical_context: str
    target_progress: int = TARGET_PROGRESS
    difficulty: Difficulty = "medium"


class GameState(BaseModel):
    """Aggregate root for one game session.

    Mutated only through GameStateMachine; everything else reads it.
    """

    remaining_messages: int = MAX_MESSAGES
    message_history: list[Message] = Field(default_factory=list)
    status: GameStatus = "playing"
    objective_progress: int = 0
    current_objective: GameObjective | None = None
    is_loading: bool = False
    error: str | None = None
    last_message_time: datetime | None = None
    is_rate_limited: bool = False
