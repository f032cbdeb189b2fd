"""In-memory game sessions, keyed by a random id.

Nothing is persisted; restarting the server ends every game. The registry is
bounded: sessions untouched for longer than the idle timeout are dropped, and
once the cap is reached the least recently used session makes room for a new
one.
"""

import logging
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable

from revisionist.orchestrator import TurnOrchestrator

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], TurnOrchestrator]

DEFAULT_MAX_SESSIONS = 500
DEFAULT_IDLE_SECONDS = 3600.0

# session_id → (game, last access in monotonic seconds); oldest access first
_sessions: OrderedDict[str, tuple[TurnOrchestrator, float]] = OrderedDict()
_factory: SessionFactory | None = None
_max_sessions = DEFAULT_MAX_SESSIONS
_idle_seconds = DEFAULT_IDLE_SECONDS
_clock: Callable[[], float] = time.monotonic


def init_sessions(
    factory: SessionFactory,
    max_sessions: int = DEFAULT_MAX_SESSIONS,
    idle_seconds: float = DEFAULT_IDLE_SECONDS,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    global _factory, _max_sessions, _idle_seconds, _clock
    _factory = factory
    _max_sessions = max(1, max_sessions)
    _idle_seconds = idle_seconds
    _clock = clock
    _sessions.clear()


def _evict(now: float) -> None:
    while _sessions:
        session_id, (_, last_seen) = next(iter(_sessions.items()))
        if now - last_seen > _idle_seconds:
            logger.info("session %s idle for %.0fs, dropped", session_id, now - last_seen)
        elif len(_sessions) >= _max_sessions:
            logger.info("session cap %d reached, dropping %s", _max_sessions, session_id)
        else:
            break
        del _sessions[session_id]


def create_session() -> tuple[str, TurnOrchestrator]:
    assert _factory is not None, "Call init_sessions() before creating sessions"
    now = _clock()
    _evict(now)
    session_id = uuid.uuid4().hex
    game = _factory()
    _sessions[session_id] = (game, now)
    return session_id, game


def get_session(session_id: str) -> TurnOrchestrator | None:
    entry = _sessions.get(session_id)
    if entry is None:
        return None
    game, last_seen = entry
    now = _clock()
    if now - last_seen > _idle_seconds:
        del _sessions[session_id]
        logger.info("session %s expired", session_id)
        return None
    _sessions[session_id] = (game, now)
    _sessions.move_to_end(session_id)
    return game


def delete_session(session_id: str) -> bool:
    return _sessions.pop(session_id, None) is not None


def session_count() -> int:
    return len(_sessions)
