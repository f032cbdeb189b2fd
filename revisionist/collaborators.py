"""Character and timeline collaborators.

The turn orchestrator depends only on the Collaborator protocol. Any object
with these two coroutines will do; tests pass stubs, production passes an
LLMCollaborator wrapping an HttpLLM.

Both calls raise:
  CollaboratorError   — the model answered but the reply is unusable
                        (invalid JSON, missing or empty fields).
  LLMConnectionError  — the request never completed; passed through untouched.
  LLMError            — the backend rejected the request; wrapped as
                        CollaboratorError.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Protocol

from pydantic import ValidationError

from revisionist.llm import LLM, LLMConnectionError, LLMError
from revisionist.models import (
    MAX_MESSAGE_LENGTH,
    CharacterResponse,
    DiceOutcome,
    Message,
    TimelineEvaluation,
)
from revisionist.prompts import PromptError, character_prompts, timeline_prompts

logger = logging.getLogger(__name__)


class CollaboratorError(RuntimeError):
    """Raised when a collaborator cannot produce a structurally valid result."""


class Collaborator(Protocol):
    async def respond_as_character(
        self,
        user_text: str,
        history: list[Message],
        outcome: DiceOutcome,
    ) -> CharacterResponse: ...

    async def evaluate_timeline(
        self,
        roll: int,
        outcome: DiceOutcome,
        character_response: CharacterResponse,
        user_text: str,
        objective_title: str,
    ) -> TimelineEvaluation: ...


def parse_json_output(text: str) -> dict | None:
    """Parse a JSON object from LLM output, stripping markdown fences."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    try:
        data = json.loads(cleaned)
        return data if isinstance(data, dict) else None
    except json.JSONDecodeError as e:
        logger.warning("LLM output is not valid JSON: %s", e)
        return None


def _coerce_progress(value: Any) -> int | None:
    # bool is an int subclass; "true" is not a progress change
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return round(value)
    return None


class LLMCollaborator:
    """Collaborator backed by an LLM callable.

    The character always plays Franz Ferdinand; the objective title reaches
    the timeline call from the orchestrator.
    """

    def __init__(self, llm: LLM) -> None:
        self._llm = llm

    async def _call(self, stage: str, system: str, prompt: str) -> str:
        try:
            return await self._llm(stage, prompt, system=system)
        except LLMConnectionError:
            raise
        except LLMError as e:
            raise CollaboratorError(f"{stage.capitalize()} AI could not process the request: {e}") from e

    async def respond_as_character(
        self,
        user_text: str,
        history: list[Message],
        outcome: DiceOutcome,
    ) -> CharacterResponse:
        try:
            system, prompt = character_prompts(
                user_text, history, outcome, max_length=MAX_MESSAGE_LENGTH,
            )
        except PromptError as e:
            raise CollaboratorError(f"Character prompt could not be built: {e}") from e

        output = await self._call("character", system, prompt)
        data = parse_json_output(output)
        if data is None:
            raise CollaboratorError("Character AI returned an unreadable response")
        try:
            return CharacterResponse(
                message=str(data.get("message") or "").strip(),
                action=str(data.get("action") or "").strip(),
            )
        except ValidationError as e:
            raise CollaboratorError("Character AI response is missing message or action") from e

    async def evaluate_timeline(
        self,
        roll: int,
        outcome: DiceOutcome,
        character_response: CharacterResponse,
        user_text: str,
        objective_title: str,
    ) -> TimelineEvaluation:
        try:
            system, prompt = timeline_prompts(
                roll, outcome,
                character_response.message,
                character_response.action,
                user_text,
                objective_title,
            )
        except PromptError as e:
            raise CollaboratorError(f"Timeline prompt could not be built: {e}") from e

        output = await self._call("timeline", system, prompt)
        data = parse_json_output(output)
        if data is None:
            raise CollaboratorError("Timeline AI could not process the request: invalid JSON")

        progress = _coerce_progress(data.get("progressChange"))
        if progress is None:
            raise CollaboratorError("Timeline AI could not process the request: missing progressChange")
        try:
            return TimelineEvaluation(
                impact=str(data.get("timelineImpact") or "").strip(),
                progress_change=progress,
            )
        except ValidationError as e:
            raise CollaboratorError("Timeline AI could not process the request: missing timelineImpact") from e
