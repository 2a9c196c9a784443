"""In-memory session store: status, intervention queue, pause flag, reactions, replay log.

The intervention queue is the only state an outside actor (the user) writes
while a pass is running; the orchestrator drains it at turn boundaries.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from synapse.events import Event
from synapse.models import Intervention

logger = logging.getLogger(__name__)

PENDING = "pending"
ACTIVE = "active"
COMPLETED = "completed"
IDLE = "idle"         # between passes, waiting for the user to continue
ERROR = "error"

MAX_PROBLEM_CHARS = 12_000
MAX_MESSAGE_CHARS = 1_000
MAX_QUESTION_CHARS = 2_000


@dataclass
class ReplayEvent:
    event: dict[str, Any]
    elapsed_ms: int


@dataclass
class DebateSession:
    id: str
    problem: str
    api_keys: dict[str, list[str]] = field(default_factory=dict)
    status: str = PENDING
    created_at: float = field(default_factory=time.time)
    interventions: list[Intervention] = field(default_factory=list)
    paused: bool = False
    reactions: dict[str, dict[str, int]] = field(default_factory=dict)
    replay: list[ReplayEvent] = field(default_factory=list)
    transcript: str = ""
    summary_agent_id: str = ""
    state: Any = None     # DebateState carried between passes


class SessionStore:
    def __init__(self, ttl_sec: float = 7200.0) -> None:
        self._ttl = ttl_sec
        self._sessions: dict[str, DebateSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, problem: str, api_keys: dict[str, list[str]] | None = None) -> DebateSession:
        if not problem.strip():
            raise ValueError("Problem must not be empty")
        if len(problem) > MAX_PROBLEM_CHARS:
            raise ValueError(f"Problem exceeds {MAX_PROBLEM_CHARS} characters")
        self.cleanup()
        session = DebateSession(id=uuid.uuid4().hex, problem=problem, api_keys=dict(api_keys or {}))
        self._sessions[session.id] = session
        logger.debug("Session created: %s", session.id)
        return session

    def get(self, session_id: str) -> DebateSession | None:
        return self._sessions.get(session_id)

    def update(self, session_id: str, **fields: Any) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        for name, value in fields.items():
            if not hasattr(session, name):
                raise AttributeError(f"DebateSession has no field {name!r}")
            setattr(session, name, value)
        return True

    def push_intervention(self, session_id: str, content: str) -> bool:
        """Queue a user message. Only accepted while a pass is running."""
        content = content.strip()
        if not content:
            raise ValueError("Message must not be empty")
        if len(content) > MAX_MESSAGE_CHARS:
            raise ValueError(f"Message exceeds {MAX_MESSAGE_CHARS} characters")
        session = self._sessions.get(session_id)
        if session is None or session.status != ACTIVE:
            return False
        session.interventions.append(Intervention(content=content, timestamp=time.time() * 1000))
        return True

    def drain_interventions(self, session_id: str) -> list[Intervention]:
        session = self._sessions.get(session_id)
        if session is None:
            return []
        drained, session.interventions = session.interventions, []
        return drained

    def has_pending_interventions(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return bool(session and session.interventions)

    def set_paused(self, session_id: str, paused: bool = True) -> bool:
        return self.update(session_id, paused=paused)

    def is_paused(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return bool(session and session.paused)

    def add_reaction(self, session_id: str, message_id: str, emoji: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        tally = session.reactions.setdefault(message_id, {})
        tally[emoji] = tally.get(emoji, 0) + 1
        return True

    def reactions(self, session_id: str) -> dict[str, dict[str, int]]:
        session = self._sessions.get(session_id)
        return session.reactions if session else {}

    def record_event(self, session_id: str, event: Event) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        elapsed = event.timestamp - int(session.created_at * 1000)
        session.replay.append(ReplayEvent(event=event.to_dict(), elapsed_ms=max(0, elapsed)))

    def replay_events(self, session_id: str) -> list[ReplayEvent]:
        session = self._sessions.get(session_id)
        return list(session.replay) if session else []

    def cleanup(self) -> int:
        """Drop sessions older than the TTL. Returns how many were removed."""
        cutoff = time.time() - self._ttl
        expired = [sid for sid, s in self._sessions.items() if s.created_at < cutoff]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Expired %d session(s)", len(expired))
        return len(expired)
