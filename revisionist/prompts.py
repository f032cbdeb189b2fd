"""Handlebars prompt rendering for the character, timeline and objective calls.

Templates use triple braces for any text that came from the player or the
model so that quotes and ampersands reach the LLM unescaped.
"""

from collections.abc import Callable
from typing import Any

import pybars

from revisionist.models import DiceOutcome, Message

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

DEFAULT_OBJECTIVE_TITLE = "Prevent World War I"

# How many earlier messages the character gets to see
HISTORY_WINDOW = 10


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context, helpers=_HELPERS)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Dice tier guidance ───────────────────────────────────

OUTCOME_GUIDANCE: dict[str, str] = {
    "Critical Failure": (
        "Things go badly wrong. You misread the message completely and take an "
        "action that works against the sender's intent, possibly making matters worse."
    ),
    "Failure": (
        "You are unconvinced. You dismiss or misunderstand the message and your "
        "action does little to help, or helps the wrong cause."
    ),
    "Neutral": (
        "You are curious but cautious. You take a small, noncommittal action."
    ),
    "Success": (
        "You are persuaded. You take a meaningful action in line with the message."
    ),
    "Critical Success": (
        "You are deeply moved. You take a bold, decisive action that fully embraces "
        "the sender's intent."
    ),
}


# ── Templates ────────────────────────────────────────────

CHARACTER_SYSTEM_TEMPLATE = """\
You are a historical figure responding to messages from a time traveler trying to change history.

Character: Franz Ferdinand, Archduke of Austria-Hungary
Time Period: 1913-1914
Location: Vienna, Austria-Hungary

Objective Context: Someone is trying to "Prevent World War I" by sending you messages about future events. \
The year is 1914, and tensions are rising across Europe. A great war threatens to engulf the continent.

Character Traits:
- Heir to the Austro-Hungarian throne
- Pragmatic and thoughtful leader
- Interested in reform and modernization
- Concerned about rising nationalism
- Values diplomatic solutions

Instructions:
- Respond as Franz Ferdinand would, considering his personality, knowledge, and the historical context
- Be skeptical but not dismissive of unusual information
- Reflect the political concerns of Austria-Hungary in 1914
- Keep responses conversational and authentic to the character

Fate has rolled: {{outcome}}.
{{{guidance}}}

Reply with a JSON object and nothing else:
{"message": "<what you say, at most {{max_length}} characters>", "action": "<what you decide to do>"}
"""

CHARACTER_USER_TEMPLATE = """\
{{#if history}}Conversation so far:
{{#last history window}}{{speaker}}: {{{text}}}
{{/last}}
{{/if}}New message from the time traveler:
{{{message}}}
"""

TIMELINE_SYSTEM_TEMPLATE = """\
You are a historian evaluating how a single decision changes the course of history.

Current objective: {{{objective}}}

Judge how far the historical figure's ACTION (not their words) moves the world toward \
or away from the objective. Scale the change with the dice outcome:
- Critical Success: +25 to +50
- Success: +10 to +30
- Neutral: -5 to +10
- Failure: -15 to +5
- Critical Failure: -50 to -10

Reply with a JSON object and nothing else:
{"timelineImpact": "<one or two sentences of consequences>", "progressChange": <integer>}
"""

TIMELINE_USER_TEMPLATE = """\
Dice roll: {{roll}} ({{outcome}})
Time traveler's message: {{{message}}}
Franz Ferdinand said: {{{character_message}}}
Franz Ferdinand's action: {{{character_action}}}
"""

OBJECTIVE_SYSTEM_PROMPT = (
    "You are an expert historian and game designer creating engaging historical "
    "scenarios for educational gameplay."
)

OBJECTIVE_USER_PROMPT = """\
Generate a unique historical objective for a strategic text-based game where players \
send messages to historical figures to alter history.

Requirements:
- Create a specific, achievable goal (prevent/cause event, accelerate progress, etc.)
- Include clear success criteria
- Provide historical context explaining the significance
- Choose appropriate difficulty level (easy/medium/hard)
- Focus on scenarios requiring 3-5 strategic interventions

Return a JSON object with this structure:
{"title": "Brief objective title", "successCriteria": "...", "historicalContext": "...", "difficulty": "easy|medium|hard"}
"""


# ── Prompt builders ──────────────────────────────────────


def character_prompts(
    user_text: str,
    history: list[Message],
    outcome: DiceOutcome,
    max_length: int = 160,
) -> tuple[str, str]:
    """Return (system, user) prompts for the character call."""
    system = render_prompt(CHARACTER_SYSTEM_TEMPLATE, {
        "outcome": outcome,
        "guidance": OUTCOME_GUIDANCE[outcome],
        "max_length": max_length,
    })
    turns = [
        {"speaker": "Time traveler" if m.sender == "user" else "Franz Ferdinand", "text": m.text}
        for m in history
        if m.sender != "system"
    ]
    user = render_prompt(CHARACTER_USER_TEMPLATE, {
        "history": turns,
        "window": HISTORY_WINDOW,
        "message": user_text,
    })
    return system, user


def timeline_prompts(
    roll: int,
    outcome: DiceOutcome,
    character_message: str,
    character_action: str,
    user_text: str,
    objective_title: str,
) -> tuple[str, str]:
    """Return (system, user) prompts for the timeline evaluation call."""
    system = render_prompt(TIMELINE_SYSTEM_TEMPLATE, {
        "objective": objective_title or DEFAULT_OBJECTIVE_TITLE,
    })
    user = render_prompt(TIMELINE_USER_TEMPLATE, {
        "roll": roll,
        "outcome": outcome,
        "message": user_text,
        "character_message": character_message,
        "character_action": character_action,
    })
    return system, user
