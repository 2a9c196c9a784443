"""Event protocol: the ordered stream a client consumes for one debate."""

import json
import time
from dataclasses import dataclass, field
from typing import Any

DEBATE_START = "debate:start"
AGENT_THINKING = "agent:thinking"
AGENT_CHUNK = "agent:chunk"
AGENT_DONE = "agent:done"
AGENT_UNAVAILABLE = "agent:unavailable"
STANCE_CHANGE = "psych:state_change"
CONSENSUS_UPDATE = "consensus:update"
MOMENTUM_UPDATE = "momentum:update"
QUOTE_LINKED = "quote:linked"
RESEARCH_RESULTS = "research:results"
USER_INTERVENTION = "user:intervention"
TURN_PAUSE = "turn:pause"
ROUND_COMPLETE = "round:complete"
DEBATE_SUMMARY = "debate:summary"
DEBATE_END = "debate:end"
FOLLOWUP_CHUNK = "followup:chunk"
FOLLOWUP_DONE = "followup:done"
HEARTBEAT = "heartbeat"
ERROR = "error"

EVENT_TYPES: frozenset[str] = frozenset({
    DEBATE_START, AGENT_THINKING, AGENT_CHUNK, AGENT_DONE, AGENT_UNAVAILABLE,
    STANCE_CHANGE, CONSENSUS_UPDATE, MOMENTUM_UPDATE, QUOTE_LINKED,
    RESEARCH_RESULTS, USER_INTERVENTION, TURN_PAUSE, ROUND_COMPLETE,
    DEBATE_SUMMARY, DEBATE_END, FOLLOWUP_CHUNK, FOLLOWUP_DONE, HEARTBEAT, ERROR,
})


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Event:
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.type}")

    @property
    def is_fatal(self) -> bool:
        return self.type == ERROR and bool(self.data.get("fatal"))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp}


def make_event(event_type: str, data: dict[str, Any] | None = None) -> Event:
    return Event(type=event_type, data=data or {})


def error_event(message: str, fatal: bool = False, **extra: Any) -> Event:
    return make_event(ERROR, {"message": message, "fatal": fatal, **extra})


def encode_sse(event: Event) -> str:
    """One Server-Sent Events frame."""
    payload = json.dumps(event.to_dict(), ensure_ascii=False)
    return f"event: {event.type}\ndata: {payload}\n\n"
