import logging
from functools import partial

from fastapi import FastAPI

from revisionist import config, sessions
from revisionist.collaborators import LLMCollaborator
from revisionist.llm import HttpLLM
from revisionist.objectives import generate_ai_objective
from revisionist.orchestrator import TurnOrchestrator
from revisionist.routes import router
from revisionist.sessions import SessionFactory

logger = logging.getLogger(__name__)


def build_session() -> TurnOrchestrator:
    """Build a session from the current config (read fresh for every game)."""
    cfg = config.get_config()
    conn = cfg["llm_connection"]
    llm = HttpLLM(
        provider_url=conn["provider_url"],
        api_key=conn["api_key"],
        provider_format=conn["provider_format"],
        model=conn["model"],
        temperature=float(conn["temperature"]),
        timeout=float(conn["timeout"]),
    )
    objective_source = None
    if cfg["objective_source"] == "ai":
        objective_source = partial(generate_ai_objective, llm)
    logger.debug("new session provider=%s format=%s", conn["provider_url"], conn["provider_format"])
    return TurnOrchestrator(
        LLMCollaborator(llm),
        rate_limit_seconds=float(cfg["rate_limit_seconds"]),
        objective_source=objective_source,
    )


def create_app(session_factory: SessionFactory | None = None, **session_limits) -> FastAPI:
    """Build the app. `session_limits` (max_sessions, idle_seconds, clock)
    override the configured session registry limits."""
    cfg = config.get_config()
    limits = {
        "max_sessions": int(cfg["max_sessions"]),
        "idle_seconds": float(cfg["session_idle_minutes"]) * 60,
        **session_limits,
    }
    sessions.init_sessions(session_factory or build_session, **limits)

    app = FastAPI(title="Revisionist")
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn
app = create_app()
