"""Game session endpoints: create, read, send, reset, objective, summary."""

from typing import Any

from fastapi import APIRouter, HTTPException

from revisionist import sessions
from revisionist.orchestrator import TurnOrchestrator

from .models import MessageBody

router = APIRouter()


def _require(session_id: str) -> TurnOrchestrator:
    game = sessions.get_session(session_id)
    if not game:
        raise HTTPException(404, "Session not found")
    return game


def _state_payload(session_id: str, game: TurnOrchestrator) -> dict[str, Any]:
    game.refresh_rate_limit()
    payload = game.state.model_dump(mode="json")
    payload["session_id"] = session_id
    payload["can_send_message"] = game.can_send_message
    return payload


@router.post("/sessions", status_code=201)
async def create_session():
    """Start a new game with the default objective."""
    session_id, game = sessions.create_session()
    await game.generate_objective()
    return _state_payload(session_id, game)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    """Current game state."""
    return _state_payload(session_id, _require(session_id))


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """Drop a session."""
    if not sessions.delete_session(session_id):
        raise HTTPException(404, "Session not found")
    return {"ok": True}


@router.post("/sessions/{session_id}/messages")
async def send_message(session_id: str, body: MessageBody):
    """Play one turn. Failures come back in the state's error field."""
    game = _require(session_id)
    await game.send_message(body.message)
    return _state_payload(session_id, game)


@router.post("/sessions/{session_id}/reset")
async def reset_session(session_id: str):
    """Play again: fresh budget, history and objective."""
    game = _require(session_id)
    game.reset_game()
    await game.generate_objective()
    return _state_payload(session_id, game)


@router.post("/sessions/{session_id}/objective")
async def new_objective(session_id: str):
    """Replace the current objective."""
    game = _require(session_id)
    await game.generate_objective()
    return _state_payload(session_id, game)


@router.get("/sessions/{session_id}/summary")
async def get_summary(session_id: str):
    """End-of-game summary (available at any point in the game)."""
    return _require(session_id).summary().model_dump(mode="json")
