"""Game objectives.

Two sources:
  fixed — the "Prevent World War I" objective every game starts with.
  ai    — ask the LLM for a fresh historical objective.
"""

import logging

from pydantic import ValidationError

from revisionist.collaborators import parse_json_output
from revisionist.llm import LLM, LLMError
from revisionist.models import TARGET_PROGRESS, GameObjective
from revisionist.prompts import OBJECTIVE_SYSTEM_PROMPT, OBJECTIVE_USER_PROMPT

logger = logging.getLogger(__name__)


class ObjectiveError(RuntimeError):
    """Raised when an objective cannot be generated."""


def default_objective() -> GameObjective:
    return GameObjective(
        title="Prevent World War I",
        success_criteria=(
            "Successfully prevent the outbreak of World War I through strategic "
            "interventions with key historical figures. Achieve diplomatic solutions, "
            "reduce tensions, or eliminate trigger events that led to global conflict."
        ),
        historical_context=(
            "World War I began in 1914 following the assassination of Archduke Franz "
            "Ferdinand in Sarajevo. A complex web of alliances, nationalism, and imperial "
            "competition created a powder keg that exploded into global warfare. Key "
            "figures include Franz Ferdinand, Kaiser Wilhelm II, Tsar Nicholas II, and "
            "other European leaders whose decisions shaped this tragic period."
        ),
        target_progress=TARGET_PROGRESS,
        difficulty="medium",
    )


async def generate_ai_objective(llm: LLM) -> GameObjective:
    """Ask the LLM for a new objective. target_progress is always 100."""
    try:
        output = await llm("objective", OBJECTIVE_USER_PROMPT, system=OBJECTIVE_SYSTEM_PROMPT)
    except LLMError as e:
        raise ObjectiveError(f"Failed to generate objective: {e}") from e

    data = parse_json_output(output)
    if data is None:
        raise ObjectiveError("Invalid objective format generated")
    try:
        return GameObjective(
            title=data["title"],
            success_criteria=data["successCriteria"],
            historical_context=data["historicalContext"],
            difficulty=data.get("difficulty", "medium"),
            target_progress=TARGET_PROGRESS,
        )
    except (KeyError, ValidationError) as e:
        raise ObjectiveError(f"Invalid objective format generated: {e}") from e
