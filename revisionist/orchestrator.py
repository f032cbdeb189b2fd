"""Turn orchestrator: runs one player turn end-to-end.

Turn flow:
  1. Reject if the previous turn started less than a second ago.
  2. Reject empty messages.
  3. Append the player message and spend one message from the budget
     (end conditions are checked straight away).
  4. Roll the D20.
  5. Character collaborator → {message, action}; the spoken line is capped
     at 160 characters.
  6. Timeline collaborator → {impact, progress_change}.
  7. Append one AI message carrying the roll, tier, action, impact and
     progress change, then apply the change to the objective progress.
  8. Re-check end conditions.

Failure rules:
  - A collaborator that answers with something unusable leaves no AI message
    behind and the spent message stays spent.
  - A request that never reached the backend refunds the spent message.
  - A reset while a turn is in flight abandons that turn: whatever it
    returns later is dropped and never touches the new game.
  - Nothing is raised to the caller; the error string on GameState carries it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from revisionist.collaborators import Collaborator, CollaboratorError
from revisionist.dice import RandomSource, roll_d20
from revisionist.llm import LLMConnectionError, LLMError
from revisionist.models import (
    MAX_MESSAGE_LENGTH,
    CharacterResponse,
    GameObjective,
    GameState,
    Message,
    TimelineEvaluation,
)
from revisionist.objectives import ObjectiveError, default_objective
from revisionist.prompts import DEFAULT_OBJECTIVE_TITLE
from revisionist.state import Clock, GameStateMachine
from revisionist.summary import GameSummary, generate_game_summary

logger = logging.getLogger(__name__)

ObjectiveSource = Callable[[], Awaitable[GameObjective]]

EMPTY_MESSAGE_ERROR = "Message cannot be empty"
RATE_LIMIT_ERROR = "Please wait before sending another message"
CHARACTER_ERROR = "Failed to generate character response"
TIMELINE_ERROR = "Failed to generate timeline analysis"
NETWORK_ERROR = "Could not reach the AI service. Your message was not used, please try again."
UNEXPECTED_ERROR = "Something went wrong while resolving your message"


def truncate_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Cap text at `limit` characters, ending with an ellipsis when cut."""
    if len(text) <= limit:
        return text
    logger.warning("AI response exceeded %d characters (%d), truncating", limit, len(text))
    return text[: limit - 3] + "..."


class TurnOrchestrator:
    """One game session: owns the state machine and is its only writer.

    Args:
        collaborator:       Character + timeline capability (see Collaborator).
        clock:              Returns the current aware datetime; tests pass a
                            fake clock to drive the rate limiter.
        rng:                Random source for the dice engine.
        rate_limit_seconds: Minimum gap between the starts of two turns.
        objective_source:   Coroutine factory producing a new objective. When
                            unset, or when it fails, the fixed objective is used.
    """

    def __init__(
        self,
        collaborator: Collaborator,
        *,
        clock: Clock | None = None,
        rng: RandomSource | None = None,
        rate_limit_seconds: float = 1.0,
        objective_source: ObjectiveSource | None = None,
    ) -> None:
        self._collaborator = collaborator
        self._machine = GameStateMachine(clock, rate_limit_seconds)
        self._rng = rng
        self._objective_source = objective_source
        self._rate_limit_handle: asyncio.TimerHandle | None = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> GameState:
        return self._machine.state

    @property
    def can_send_message(self) -> bool:
        return self._machine.can_send_message

    def summary(self) -> GameSummary:
        return generate_game_summary(self._machine.state)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> None:
        m = self._machine

        if not m.is_playing:
            logger.debug("send_message ignored, game is %s", m.state.status)
            return
        if m.state.is_loading:
            logger.debug("send_message ignored, a turn is already in flight")
            return

        wait = m.rate_limit_remaining()
        if wait > 0:
            logger.info("turn rejected by rate limit (%.2fs left)", wait)
            m.set_error(RATE_LIMIT_ERROR)
            m.set_rate_limited(True)
            self._schedule_rate_limit_clear(wait)
            return

        if not text or not text.strip():
            m.set_error(EMPTY_MESSAGE_ERROR)
            return

        m.set_error(None)
        m.set_rate_limited(False)
        # Earlier turns only; the new message reaches the character as user_text
        history = [msg for msg in m.state.message_history if msg.sender != "system"]

        m.add_user_message(text)
        m.decrement_messages()
        m.set_loading(True)
        m.mark_turn_started()
        generation = m.generation

        try:
            await self._resolve_turn(text, history, generation)
        except LLMConnectionError as e:
            if not self._is_stale(generation):
                logger.warning("AI backend unreachable, refunding message: %s", e)
                m.restore_message()
                m.set_error(NETWORK_ERROR)
        except Exception:
            logger.exception("Unexpected failure while resolving turn")
            if not self._is_stale(generation):
                m.set_error(UNEXPECTED_ERROR)
        finally:
            if not self._is_stale(generation):
                m.set_loading(False)

    def reset_game(self) -> None:
        """Start over: full budget, empty history, no objective.

        A turn still waiting on a collaborator is abandoned; its result is
        dropped when it arrives.
        """
        if self._rate_limit_handle is not None:
            self._rate_limit_handle.cancel()
            self._rate_limit_handle = None
        self._machine.reset()
        logger.info("game reset")

    async def generate_objective(self) -> GameObjective:
        objective: GameObjective | None = None
        if self._objective_source is not None:
            try:
                objective = await self._objective_source()
            except ObjectiveError as e:
                logger.warning("Objective generation failed, using default: %s", e)
        if objective is None:
            objective = default_objective()
        self._machine.set_objective(objective)
        return objective

    # ------------------------------------------------------------------
    # Turn resolution
    # ------------------------------------------------------------------

    def _is_stale(self, generation: int) -> bool:
        return self._machine.generation != generation

    async def _resolve_turn(self, text: str, history: list[Message], generation: int) -> None:
        m = self._machine
        dice = roll_d20(self._rng)
        logger.info("turn roll=%d outcome=%s", dice.roll, dice.outcome)

        try:
            response = CharacterResponse.model_validate(
                await self._collaborator.respond_as_character(text, history, dice.outcome)
            )
        except LLMConnectionError:
            raise
        except (CollaboratorError, LLMError, ValidationError) as e:
            logger.warning("Character collaborator failed: %s", e)
            if not self._is_stale(generation):
                m.set_error(CHARACTER_ERROR)
            return
        if self._is_stale(generation):
            logger.info("game was reset during the character call, dropping turn")
            return

        response = response.model_copy(update={"message": truncate_message(response.message)})

        objective = m.state.current_objective
        objective_title = objective.title if objective else DEFAULT_OBJECTIVE_TITLE
        try:
            evaluation = TimelineEvaluation.model_validate(
                await self._collaborator.evaluate_timeline(
                    dice.roll, dice.outcome, response, text, objective_title,
                )
            )
        except LLMConnectionError:
            raise
        except (CollaboratorError, LLMError, ValidationError) as e:
            logger.warning("Timeline collaborator failed: %s", e)
            if not self._is_stale(generation):
                m.set_error(TIMELINE_ERROR)
            return
        if self._is_stale(generation):
            logger.info("game was reset during the timeline call, dropping turn")
            return

        m.add_ai_message(
            response.message,
            dice=dice,
            character_action=response.action,
            timeline_impact=evaluation.impact,
            progress_change=evaluation.progress_change,
        )
        progress = m.update_objective_progress(evaluation.progress_change)
        logger.info(
            "turn resolved change=%+d progress=%d remaining=%d status=%s",
            evaluation.progress_change, progress,
            m.state.remaining_messages, m.state.status,
        )

    # ------------------------------------------------------------------
    # Rate limit bookkeeping
    # ------------------------------------------------------------------

    def refresh_rate_limit(self) -> None:
        """Clear the rate-limit flag and its error once the window has passed."""
        m = self._machine
        if m.state.is_rate_limited and m.rate_limit_remaining() == 0:
            m.set_rate_limited(False)
            if m.state.error == RATE_LIMIT_ERROR:
                m.set_error(None)

    def _schedule_rate_limit_clear(self, delay: float) -> None:
        """Best-effort UI clear; the timestamp check stays authoritative."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._rate_limit_handle is not None:
            self._rate_limit_handle.cancel()
        self._rate_limit_handle = loop.call_later(delay, self._on_rate_limit_elapsed)

    def _on_rate_limit_elapsed(self) -> None:
        self._rate_limit_handle = None
        self.refresh_rate_limit()
