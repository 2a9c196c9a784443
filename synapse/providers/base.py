"""Abstract base for all agent clients, plus the shared error taxonomy and key ring."""

import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from config.config_loader import ProviderConfig
from synapse.models import AgentProfile

TEXT_DELTA = "text_delta"
DONE = "done"
ERROR = "error"

# Checked first: these never resolve by retrying.
PERMANENT_MARKERS = ("auth", "401", "403", "404", "invalid", "permission", "denied", "not found")
TRANSIENT_MARKERS = (
    "rate limit", "rate_limit", "ratelimit", "429", "overloaded", "timeout", "timed out",
    "stalled", "connection", "temporarily", "unavailable", "server error",
)
_5XX = re.compile(r"\b5\d\d\b")
_RATE_LIMIT = re.compile(r"rate.?limit|429|quota|too many requests", re.IGNORECASE)


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


def is_transient_error(text: str) -> bool:
    """True when a failure message describes something worth retrying."""
    lower = (text or "").lower()
    if any(marker in lower for marker in PERMANENT_MARKERS):
        return False
    if any(marker in lower for marker in TRANSIENT_MARKERS):
        return True
    return bool(_5XX.search(lower))


def is_rate_limit(text: str) -> bool:
    return bool(_RATE_LIMIT.search(text or ""))


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class Completion:
    text: str
    usage: Usage | None = None


@dataclass(frozen=True)
class StreamChunk:
    kind: str              # TEXT_DELTA, DONE or ERROR
    content: str = ""
    usage: Usage | None = None


class KeyRing:
    """Round-robin over one provider's API keys.

    ``next_key`` is the key to use now; ``rotate`` moves on after a rate limit.
    """

    def __init__(self, keys: Sequence[str]) -> None:
        self._keys = [k for k in keys if k]
        if not self._keys:
            raise ValueError("KeyRing needs at least one key")
        self._index = 0

    def __len__(self) -> int:
        return len(self._keys)

    def next_key(self) -> str:
        return self._keys[self._index]

    def rotate(self) -> str:
        self._index = (self._index + 1) % len(self._keys)
        return self._keys[self._index]


Message = dict[str, str]   # {"role": "system" | "user" | "assistant", "content": ...}


class AIAgent(ABC):
    """One council member backed by a remote model."""

    def __init__(self, profile: AgentProfile, config: ProviderConfig, keys: Sequence[str]) -> None:
        self.profile = profile
        self._config = config
        self._keys = KeyRing(keys)

    def name(self) -> str:
        return self.profile.id

    def model_string(self) -> str:
        return self.profile.model

    @property
    def stall_timeout_sec(self) -> float:
        return self._config.stall_timeout_sec

    def _on_failure(self, message: str) -> None:
        if is_rate_limit(message) and len(self._keys) > 1:
            self._keys.rotate()

    @abstractmethod
    async def complete(self, messages: list[Message]) -> Completion:
        """Full, non-streamed response.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...

    @abstractmethod
    def stream(self, messages: list[Message]) -> AsyncIterator[StreamChunk]:
        """Incremental response: TEXT_DELTA chunks then one DONE, or an ERROR chunk.

        Never raises once iteration has started; failures arrive in-band.
        """
        ...

    async def validate_api_key(self) -> bool:
        """Cheap liveness check. Raises ProviderError when the model is unreachable."""
        await self.complete([{"role": "user", "content": "Reply with the word OK only."}])
        return True


def split_system(messages: list[Message]) -> tuple[str, list[Message]]:
    """Separate system text from the conversational turns (Anthropic and Gemini take it apart)."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    rest = [m for m in messages if m["role"] != "system"]
    return system, rest
