"""API tests for the FastAPI app, with sessions backed by stub collaborators."""

import pytest
from fastapi.testclient import TestClient

from conftest import FixedRolls, StubCollaborator, progress
from revisionist import config, sessions
from revisionist.app import build_session, create_app
from revisionist.collaborators import LLMCollaborator
from revisionist.orchestrator import RATE_LIMIT_ERROR, TurnOrchestrator


@pytest.fixture
def client(clock):
    stub = StubCollaborator(timelines=[progress(30)])
    app = create_app(lambda: TurnOrchestrator(stub, clock=clock, rng=FixedRolls(17)))
    return TestClient(app)


@pytest.fixture
def session_id(client):
    return client.post("/api/sessions").json()["session_id"]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestSessions:
    def test_create(self, client):
        response = client.post("/api/sessions")
        assert response.status_code == 201
        data = response.json()
        assert data["remaining_messages"] == 5
        assert data["status"] == "playing"
        assert data["message_history"] == []
        assert data["current_objective"]["title"] == "Prevent World War I"
        assert data["can_send_message"] is True

    def test_get(self, client, session_id):
        response = client.get(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json()["session_id"] == session_id

    def test_unknown_session(self, client):
        assert client.get("/api/sessions/nope").status_code == 404
        assert client.post("/api/sessions/nope/messages", json={"message": "hi"}).status_code == 404
        assert client.get("/api/sessions/nope/summary").status_code == 404

    def test_delete(self, client, session_id):
        assert client.delete(f"/api/sessions/{session_id}").json() == {"ok": True}
        assert client.get(f"/api/sessions/{session_id}").status_code == 404
        assert client.delete(f"/api/sessions/{session_id}").status_code == 404


class Ticker:
    """Monotonic clock for the session registry."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestSessionLimits:
    @pytest.fixture
    def ticker(self):
        return Ticker()

    def _client(self, **limits):
        return TestClient(create_app(lambda: TurnOrchestrator(StubCollaborator()), **limits))

    def test_oldest_session_dropped_at_cap(self):
        client = self._client(max_sessions=2)
        first, second, third = (client.post("/api/sessions").json()["session_id"] for _ in range(3))
        assert client.get(f"/api/sessions/{first}").status_code == 404
        assert client.get(f"/api/sessions/{second}").status_code == 200
        assert client.get(f"/api/sessions/{third}").status_code == 200
        assert sessions.session_count() == 2

    def test_recently_used_session_kept(self):
        client = self._client(max_sessions=2)
        first = client.post("/api/sessions").json()["session_id"]
        second = client.post("/api/sessions").json()["session_id"]
        client.get(f"/api/sessions/{first}")
        client.post("/api/sessions")
        assert client.get(f"/api/sessions/{first}").status_code == 200
        assert client.get(f"/api/sessions/{second}").status_code == 404

    def test_idle_session_expires(self, ticker):
        client = self._client(idle_seconds=60, clock=ticker)
        sid = client.post("/api/sessions").json()["session_id"]
        ticker.now += 30
        assert client.get(f"/api/sessions/{sid}").status_code == 200
        ticker.now += 61
        assert client.get(f"/api/sessions/{sid}").status_code == 404

    def test_idle_sessions_swept_on_create(self, ticker):
        client = self._client(idle_seconds=60, clock=ticker)
        for _ in range(3):
            client.post("/api/sessions")
        ticker.now += 120
        client.post("/api/sessions")
        assert sessions.session_count() == 1

    def test_cap_read_from_config(self):
        config.update_config({"max_sessions": 1})
        client = self._client()
        first = client.post("/api/sessions").json()["session_id"]
        client.post("/api/sessions")
        assert client.get(f"/api/sessions/{first}").status_code == 404


class TestMessages:
    def test_send_plays_a_turn(self, client, session_id):
        response = client.post(f"/api/sessions/{session_id}/messages", json={"message": "Avoid Sarajevo"})
        assert response.status_code == 200
        data = response.json()
        assert data["remaining_messages"] == 4
        assert data["objective_progress"] == 30
        user, ai = data["message_history"]
        assert user["text"] == "Avoid Sarajevo"
        assert ai["dice_roll"] == 17
        assert ai["dice_outcome"] == "Success"
        assert ai["progress_change"] == 30

    @pytest.mark.parametrize("message", ["", "x" * 161])
    def test_body_validated(self, client, session_id, message):
        response = client.post(f"/api/sessions/{session_id}/messages", json={"message": message})
        assert response.status_code == 422

    def test_rate_limit_reported_in_state(self, client, session_id):
        client.post(f"/api/sessions/{session_id}/messages", json={"message": "One"})
        data = client.post(f"/api/sessions/{session_id}/messages", json={"message": "Two"}).json()
        assert data["error"] == RATE_LIMIT_ERROR
        assert data["is_rate_limited"] is True
        assert data["remaining_messages"] == 4

    def test_rate_limit_cleared_when_read_after_window(self, client, clock, session_id):
        client.post(f"/api/sessions/{session_id}/messages", json={"message": "One"})
        client.post(f"/api/sessions/{session_id}/messages", json={"message": "Two"})
        clock.advance(1)
        data = client.get(f"/api/sessions/{session_id}").json()
        assert data["is_rate_limited"] is False
        assert data["error"] is None
        assert data["can_send_message"] is True

    def test_play_to_victory_then_summary(self, client, clock, session_id):
        for i in range(4):
            clock.advance(1)
            data = client.post(f"/api/sessions/{session_id}/messages", json={"message": f"Plea {i}"}).json()
        assert data["status"] == "victory"
        assert data["can_send_message"] is False

        summary = client.get(f"/api/sessions/{session_id}/summary").json()
        assert summary["message_efficiency"]["messages_saved"] == 1
        assert summary["message_efficiency"]["efficiency_rating"] == "Good"
        assert summary["statistics"]["game_outcome"] == "victory"
        assert summary["statistics"]["total_progress_gained"] == 120
        assert summary["best_roll"]["dice_roll"] == 17

    def test_reset(self, client, clock, session_id):
        client.post(f"/api/sessions/{session_id}/messages", json={"message": "One"})
        data = client.post(f"/api/sessions/{session_id}/reset").json()
        assert data["remaining_messages"] == 5
        assert data["message_history"] == []
        assert data["current_objective"]["title"] == "Prevent World War I"


def test_new_objective(client, session_id):
    data = client.post(f"/api/sessions/{session_id}/objective").json()
    assert data["current_objective"]["target_progress"] == 100


class TestSettings:
    def test_get_masks_api_key(self, client, monkeypatch):
        monkeypatch.setenv("LLM_API_KEY", "sk-secret")
        data = client.get("/api/settings").json()
        assert data["llm_connection"]["api_key"] == "***"

    def test_patch_merges(self, client):
        response = client.patch("/api/settings", json={
            "llm_connection": {"provider_url": "http://localhost:5001", "provider_format": "koboldcpp"},
            "objective_source": "ai",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["llm_connection"]["provider_url"] == "http://localhost:5001"
        assert data["llm_connection"]["model"] == "gpt-4.1"
        assert data["objective_source"] == "ai"

    def test_patch_validates(self, client):
        assert client.patch("/api/settings", json={"objective_source": "random"}).status_code == 422
        assert client.patch("/api/settings", json={"rate_limit_seconds": -1}).status_code == 422
        assert client.patch("/api/settings", json={"max_sessions": 0}).status_code == 422

    def test_session_limits_in_settings(self, client):
        data = client.get("/api/settings").json()
        assert data["max_sessions"] == 500
        assert data["session_idle_minutes"] == 60
        data = client.patch("/api/settings", json={"session_idle_minutes": 15}).json()
        assert data["session_idle_minutes"] == 15


def test_build_session_from_config():
    game = build_session()
    assert isinstance(game, TurnOrchestrator)
    assert isinstance(game._collaborator, LLMCollaborator)
    assert game._objective_source is None
