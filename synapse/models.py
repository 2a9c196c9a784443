"""Pure dataclasses shared by the debate engine. No logic beyond small helpers, no deps."""

from dataclasses import asdict, dataclass, field

USER_ID = "user"
INTERVENTION_STANCE = "intervention"


@dataclass(frozen=True)
class Capability:
    id: str                # "general_reasoning", "code_reasoning", "synthesis", ...
    strength: float        # 0.0 - 1.0
    description: str = ""


@dataclass(frozen=True)
class AgentProfile:
    """Immutable identity of one council member for the lifetime of a conversation."""

    id: str
    display_name: str
    provider: str          # key into AppConfig.providers
    model: str
    capabilities: tuple[Capability, ...] = ()
    max_tokens: int = 2048
    temperature: float = 0.7
    color: str = ""
    avatar: str = ""

    @property
    def capability_ids(self) -> frozenset[str]:
        return frozenset(c.id for c in self.capabilities)

    @property
    def total_strength(self) -> float:
        return sum(c.strength for c in self.capabilities)

    def roster_entry(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "provider": self.provider,
            "model": self.model,
            "color": self.color,
            "avatar": self.avatar,
        }


@dataclass(frozen=True)
class Turn:
    agent_id: str
    display_name: str
    content: str
    turn_number: int       # index in the transcript
    stance: str
    message_id: str

    @property
    def is_user(self) -> bool:
        return self.agent_id == USER_ID


@dataclass
class PsychologicalState:
    agent_id: str
    current: str
    history: list[str] = field(default_factory=list)
    turns_in_current: int = 0
    turns_spoken: int = 0


@dataclass
class Intervention:
    content: str
    timestamp: float       # epoch milliseconds
    category: str = "contribution"  # "clarification", "contribution", "redirect"


@dataclass(frozen=True)
class QuoteLink:
    source_message_id: str  # the earlier, referenced message
    target_message_id: str  # the new message doing the referencing
    agent_name: str
    excerpt: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SearchDecision:
    should_search: bool
    reason: str
    sources: list[str] = field(default_factory=list)
    query: str = ""


@dataclass
class SourceResult:
    source: str
    title: str
    snippet: str
    relevance: float
    url: str | None = None


@dataclass(frozen=True)
class ScoreSample:
    turn: int
    score: float

    def to_dict(self) -> dict:
        return {"turn": self.turn, "score": self.score}


@dataclass(frozen=True)
class MomentumResult:
    momentum: float
    direction: str         # "heating", "steady", "cooling"


@dataclass(frozen=True)
class KeyMoment:
    agent_id: str
    excerpt: str
    significance: str = ""


@dataclass
class StructuredSummary:
    verdict: str
    confidence: str
    key_moments: list[KeyMoment] = field(default_factory=list)
    dissent: list[dict] = field(default_factory=list)
    open_questions: list[str] = field(default_factory=list)
    user_contributions: list[str] = field(default_factory=list)
    sources: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RoundResult:
    """Terminal artifact of one orchestration pass."""

    round_number: int
    status: str            # "converged", "exhausted", "paused", "cancelled"
    consensus_score: float
    consensus_history: list[ScoreSample]
    momentum_history: list[ScoreSample]
    influence: dict[str, float]
    quote_links: list[QuoteLink]
    turns_completed: int

    def to_dict(self) -> dict:
        return {
            "round_number": self.round_number,
            "status": self.status,
            "consensus_score": self.consensus_score,
            "consensus_history": [s.to_dict() for s in self.consensus_history],
            "momentum_history": [s.to_dict() for s in self.momentum_history],
            "influence": dict(self.influence),
            "quote_links": [q.to_dict() for q in self.quote_links],
            "turns_completed": self.turns_completed,
        }
