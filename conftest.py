from datetime import datetime, timedelta, timezone

import pytest

from revisionist.models import CharacterResponse, TimelineEvaluation
from revisionist.orchestrator import TurnOrchestrator

START = datetime(1914, 6, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config at an empty per-test file and hide real LLM credentials."""
    monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "config.json"))
    for name in (
        "LLM_PROVIDER_URL", "LLM_API_KEY", "LLM_PROVIDER_FORMAT",
        "LLM_MODEL", "OPENAI_API_KEY", "OBJECTIVE_SOURCE",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FixedRolls:
    """Random source returning the given D20 rolls in order, then repeating the last."""

    def __init__(self, *rolls: int) -> None:
        self.rolls = list(rolls)

    def randint(self, a: int, b: int) -> int:
        if len(self.rolls) > 1:
            return self.rolls.pop(0)
        return self.rolls[0]


class StubCollaborator:
    """Collaborator returning canned results, or raising canned exceptions.

    Each entry in `characters` / `timelines` is used for one call; the last
    one repeats. An entry that is an exception instance is raised instead.
    """

    def __init__(self, characters=None, timelines=None) -> None:
        self.characters = list(characters or [
            CharacterResponse(message="Most intriguing.", action="Orders a review of the Sarajevo visit"),
        ])
        self.timelines = list(timelines or [
            TimelineEvaluation(impact="Tensions ease slightly.", progress_change=10),
        ])
        self.character_calls: list[tuple] = []
        self.timeline_calls: list[tuple] = []

    @staticmethod
    def _next(queue):
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def respond_as_character(self, user_text, history, outcome):
        self.character_calls.append((user_text, list(history), outcome))
        return self._next(self.characters)

    async def evaluate_timeline(self, roll, outcome, character_response, user_text, objective_title):
        self.timeline_calls.append((roll, outcome, character_response, user_text, objective_title))
        return self._next(self.timelines)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stub() -> StubCollaborator:
    return StubCollaborator()


@pytest.fixture
def game(stub, clock) -> TurnOrchestrator:
    return TurnOrchestrator(stub, clock=clock, rng=FixedRolls(10))


def progress(change: int) -> TimelineEvaluation:
    return TimelineEvaluation(impact=f"Progress {change:+d}", progress_change=change)
