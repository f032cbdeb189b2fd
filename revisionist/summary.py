"""Post-game summary: turning points, best/worst rolls, efficiency, statistics.

A turn is a player message together with the dice-enriched reply that
answered it. Player messages whose reply never arrived (failed turns) carry
no dice data and are left out of every figure. Nothing here fabricates data;
a game without resolved turns summarises to empty lists, None rolls and zeros.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from revisionist.models import MAX_MESSAGES, DiceOutcome, GameState, GameStatus

EfficiencyRating = Literal["Legendary", "Excellent", "Great", "Good", "Standard"]

# (min messages saved, rating), first match wins
_EFFICIENCY_RATINGS: list[tuple[int, EfficiencyRating]] = [
    (4, "Legendary"),
    (3, "Excellent"),
    (2, "Great"),
    (1, "Good"),
]

HIGH_IMPACT_THRESHOLD = 25


class Turn(BaseModel):
    text: str
    timestamp: datetime
    dice_roll: int
    dice_outcome: DiceOutcome
    progress_change: int
    character_action: str
    timeline_impact: str


class TurningPoint(BaseModel):
    text: str
    dice_roll: int
    dice_outcome: DiceOutcome
    progress_change: int
    timestamp: datetime
    importance: int


class MessageEfficiency(BaseModel):
    messages_used: int
    messages_saved: int
    total_messages: int
    efficiency_percentage: int
    efficiency_rating: EfficiencyRating


class GameStatistics(BaseModel):
    average_dice_roll: float
    total_progress_gained: int
    game_outcome: GameStatus
    final_progress: int
    game_duration_minutes: int


class GameSummary(BaseModel):
    critical_turning_points: list[TurningPoint]
    best_roll: Turn | None
    worst_roll: Turn | None
    message_efficiency: MessageEfficiency
    statistics: GameStatistics


def generate_game_summary(state: GameState) -> GameSummary:
    """Summarise a game. Reads state only."""
    turns = collect_turns(state)
    return GameSummary(
        critical_turning_points=find_turning_points(turns),
        best_roll=max(turns, key=lambda t: t.dice_roll) if turns else None,
        worst_roll=min(turns, key=lambda t: t.dice_roll) if turns else None,
        message_efficiency=calculate_message_efficiency(state.remaining_messages),
        statistics=calculate_statistics(state, turns),
    )


def collect_turns(state: GameState) -> list[Turn]:
    """Pair each player message with the enriched AI reply that followed it."""
    turns: list[Turn] = []
    pending = None
    for msg in state.message_history:
        if msg.sender == "user":
            pending = msg
        elif msg.sender == "ai":
            if pending is not None and msg.is_enriched:
                turns.append(Turn(
                    text=pending.text,
                    timestamp=pending.timestamp,
                    dice_roll=msg.dice_roll,
                    dice_outcome=msg.dice_outcome,
                    progress_change=msg.progress_change,
                    character_action=msg.character_action,
                    timeline_impact=msg.timeline_impact,
                ))
            pending = None
    return turns


def turn_importance(turn: Turn) -> int | None:
    """Score a turn; None means it is not a turning point."""
    change = turn.progress_change
    if turn.dice_roll >= 19:
        # a critical success that still lost 100+ points is not reported
        score = 100 + change
        return score if score > 0 else None
    if turn.dice_roll <= 2:
        return 90 + abs(change)
    if abs(change) >= HIGH_IMPACT_THRESHOLD:
        return 50 + abs(change)
    return None


def find_turning_points(turns: list[Turn]) -> list[TurningPoint]:
    points = []
    for turn in turns:
        importance = turn_importance(turn)
        if importance is None:
            continue
        points.append(TurningPoint(
            text=turn.text,
            dice_roll=turn.dice_roll,
            dice_outcome=turn.dice_outcome,
            progress_change=turn.progress_change,
            timestamp=turn.timestamp,
            importance=importance,
        ))
    return sorted(points, key=lambda p: p.importance, reverse=True)


def calculate_message_efficiency(remaining_messages: int) -> MessageEfficiency:
    saved = remaining_messages
    rating: EfficiencyRating = "Standard"
    for threshold, name in _EFFICIENCY_RATINGS:
        if saved >= threshold:
            rating = name
            break
    return MessageEfficiency(
        messages_used=MAX_MESSAGES - saved,
        messages_saved=saved,
        total_messages=MAX_MESSAGES,
        efficiency_percentage=round(saved / MAX_MESSAGES * 100),
        efficiency_rating=rating,
    )


def calculate_statistics(state: GameState, turns: list[Turn]) -> GameStatistics:
    rolls = [t.dice_roll for t in turns]
    average = round(sum(rolls) / len(rolls), 2) if rolls else 0
    return GameStatistics(
        average_dice_roll=average,
        total_progress_gained=sum(max(0, t.progress_change) for t in turns),
        game_outcome=state.status,
        final_progress=state.objective_progress,
        game_duration_minutes=game_duration_minutes(turns),
    )


def game_duration_minutes(turns: list[Turn]) -> int:
    """Whole minutes between the first and last turn (0 for one turn or none)."""
    if len(turns) <= 1:
        return 0
    stamps = sorted(t.timestamp for t in turns)
    seconds = (stamps[-1] - stamps[0]).total_seconds()
    return int(seconds / 60 + 0.5)
