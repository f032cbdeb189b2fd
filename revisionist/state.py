"""Game state machine: message budget, history, progress and end conditions.

Status transitions:

    playing ──► victory   objective_progress reached 100 (checked first)
       │
       └─────► defeat    remaining_messages reached 0 with progress < 100

Both are terminal until reset(). The one exception is the turn that is still
in flight when the budget runs out: its timeline result can still turn a
defeat into a victory, and a refunded message reopens a defeat that the
refunded decrement caused.

All mutations go through this class; the orchestrator is its only caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from revisionist.models import (
    MAX_MESSAGES,
    TARGET_PROGRESS,
    DiceResult,
    GameObjective,
    GameState,
    Message,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def clamp_progress(value: int) -> int:
    return max(0, min(TARGET_PROGRESS, value))


class GameStateMachine:
    def __init__(self, clock: Clock | None = None, rate_limit_seconds: float = 1.0) -> None:
        self._clock = clock or utc_now
        self._rate_limit_seconds = rate_limit_seconds
        self._state = GameState()
        self._generation = 0

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def generation(self) -> int:
        """Bumped by every reset(); a turn started under an older value is stale."""
        return self._generation

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._state.status == "playing"

    @property
    def can_send_message(self) -> bool:
        s = self._state
        return (
            s.status == "playing"
            and s.remaining_messages > 0
            and not s.is_loading
            and self.rate_limit_remaining() == 0
        )

    def rate_limit_remaining(self, now: datetime | None = None) -> float:
        """Seconds left before another turn may start (0 when allowed)."""
        last = self._state.last_message_time
        if last is None:
            return 0.0
        elapsed = ((now or self.now()) - last).total_seconds()
        return max(0.0, self._rate_limit_seconds - elapsed)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_user_message(self, text: str) -> Message | None:
        """Append a player message. No-op once the game has ended."""
        if not self.is_playing:
            logger.debug("user message ignored, game is %s", self._state.status)
            return None
        msg = Message(text=text, sender="user", timestamp=self.now())
        self._state.message_history.append(msg)
        return msg

    def add_ai_message(
        self,
        text: str,
        *,
        dice: DiceResult,
        character_action: str,
        timeline_impact: str,
        progress_change: int,
    ) -> Message:
        """Append the character's reply with its full dice/timeline enrichment."""
        msg = Message(
            text=text,
            sender="ai",
            timestamp=self.now(),
            dice_roll=dice.roll,
            dice_outcome=dice.outcome,
            character_action=character_action,
            timeline_impact=timeline_impact,
            progress_change=progress_change,
        )
        self._state.message_history.append(msg)
        return msg

    # ------------------------------------------------------------------
    # Budget and progress
    # ------------------------------------------------------------------

    def decrement_messages(self) -> bool:
        """Spend one message. Returns False when nothing was spent."""
        s = self._state
        if not self.is_playing or s.remaining_messages <= 0:
            return False
        s.remaining_messages -= 1
        self.check_end_conditions()
        return True

    def restore_message(self) -> None:
        """Refund one spent message (transport failures only)."""
        s = self._state
        s.remaining_messages = min(MAX_MESSAGES, s.remaining_messages + 1)
        self.check_end_conditions()

    def update_objective_progress(self, change: int) -> int:
        """Apply a signed progress change, clamped to [0, 100]."""
        s = self._state
        s.objective_progress = clamp_progress(s.objective_progress + change)
        self.check_end_conditions()
        return s.objective_progress

    def check_end_conditions(self) -> None:
        s = self._state
        if s.status == "victory":
            return
        if s.objective_progress >= TARGET_PROGRESS:
            new_status = "victory"
        elif s.remaining_messages == 0:
            new_status = "defeat"
        else:
            new_status = "playing"
        if new_status != s.status:
            logger.info(
                "game status %s -> %s (progress=%d remaining=%d)",
                s.status, new_status, s.objective_progress, s.remaining_messages,
            )
            s.status = new_status

    # ------------------------------------------------------------------
    # Transient flags
    # ------------------------------------------------------------------

    def set_loading(self, loading: bool) -> None:
        self._state.is_loading = loading

    def set_error(self, error: str | None) -> None:
        self._state.error = error

    def mark_turn_started(self) -> None:
        self._state.last_message_time = self.now()

    def set_rate_limited(self, limited: bool) -> None:
        self._state.is_rate_limited = limited

    def set_objective(self, objective: GameObjective | None) -> None:
        self._state.current_objective = objective

    def reset(self) -> None:
        """Reinitialize the whole aggregate: budget 5, empty history, playing."""
        self._state = GameState()
        self._generation += 1
