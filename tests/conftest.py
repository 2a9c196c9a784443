"""Shared pytest fixtures and test doubles."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, ProviderConfig, load_config
from synapse.models import AgentProfile, Capability, SourceResult
from synapse.providers.base import (
    DONE,
    ERROR,
    TEXT_DELTA,
    AIAgent,
    Completion,
    Message,
    ProviderError,
    StreamChunk,
)
from synapse.session import ACTIVE, SessionStore
from synapse.sources.base import SourceAdapter

# Script item that blocks the stream until the consumer gives up on it.
STALL = object()


def make_profile(
    agent_id: str = "alpha",
    display_name: str | None = None,
    provider: str = "test",
    capabilities: dict[str, float] | None = None,
) -> AgentProfile:
    caps = capabilities if capabilities is not None else {"general_reasoning": 0.8}
    return AgentProfile(
        id=agent_id,
        display_name=display_name or agent_id.capitalize(),
        provider=provider,
        model=f"{agent_id}-model",
        capabilities=tuple(Capability(id=k, strength=v) for k, v in caps.items()),
    )


def error_chunk(message: str) -> StreamChunk:
    return StreamChunk(ERROR, message)


class ScriptedAgent(AIAgent):
    """Test double AIAgent whose streamed turns follow a script.

    Each script is one attempt: a list of text fragments, StreamChunks,
    STALL, or zero-arg callables run between fragments. Attempts beyond the
    script produce a default one-sentence answer.
    """

    def __init__(
        self,
        profile: AgentProfile | str = "alpha",
        scripts: Sequence[list] | None = None,
        stall_timeout_sec: float = 1.0,
        default_text: str | None = None,
    ) -> None:
        if isinstance(profile, str):
            profile = make_profile(profile)
        config = ProviderConfig(
            name="test", sdk="test", api_key_env="TEST_API_KEY", stall_timeout_sec=stall_timeout_sec
        )
        super().__init__(profile, config, ["test-key"])
        self._scripts = [list(s) for s in (scripts or [])]
        self._default_text = default_text
        self.calls: list[list[Message]] = []
        # Shadow the class method with an AsyncMock at the instance level.
        self.complete = AsyncMock(return_value=Completion(text="OK"))  # type: ignore[assignment]

    async def complete(self, messages: list[Message]) -> Completion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Completion(text="OK")

    async def stream(self, messages: list[Message]) -> AsyncIterator[StreamChunk]:  # type: ignore[override]
        self.calls.append(messages)
        if self._scripts:
            script = self._scripts.pop(0)
        else:
            text = self._default_text or f"{self.profile.display_name} weighs in on turn {len(self.calls)}."
            script = [text]

        for item in script:
            if item is STALL:
                await asyncio.sleep(3600)
            elif callable(item):
                item()
            elif isinstance(item, StreamChunk):
                yield item
                if item.kind in (ERROR, DONE):
                    return
            else:
                yield StreamChunk(TEXT_DELTA, item)
        yield StreamChunk(DONE)


class AgentFactoryStub:
    """Stands in for build_agent: one ScriptedAgent per profile, remembered by id."""

    def __init__(
        self,
        scripts: dict[str, list[list]] | None = None,
        failing: Sequence[str] = (),
        completion: str = "OK",
        default_text: str | None = None,
        unbuildable: Sequence[str] = (),
    ) -> None:
        self.scripts = scripts or {}
        self.failing = set(failing)
        self.unbuildable = set(unbuildable)
        self.completion = completion
        self.default_text = default_text
        self.built: dict[str, ScriptedAgent] = {}

    def __call__(self, profile: AgentProfile, provider_config: ProviderConfig, keys: Sequence[str]) -> ScriptedAgent:
        if profile.id in self.unbuildable:
            raise ProviderError(profile.provider, f"Unknown model: {profile.model}")
        agent = ScriptedAgent(profile, scripts=self.scripts.get(profile.id), default_text=self.default_text)
        agent.complete = AsyncMock(return_value=Completion(text=self.completion))
        if profile.id in self.failing:
            agent.complete = AsyncMock(side_effect=ProviderError(profile.provider, "401 invalid api key"))
        self.built[profile.id] = agent
        return agent


class FakeSource(SourceAdapter):
    """Knowledge source with canned results, an optional delay, or a failure."""

    def __init__(
        self,
        source_id: str,
        results: list[SourceResult] | None = None,
        delay: float = 0.0,
        fail: bool = False,
    ) -> None:
        super().__init__()
        self.id = source_id
        self.name = source_id.title()
        self._results = results or []
        self._delay = delay
        self._fail = fail
        self.queries: list[str] = []

    async def search(self, query: str, max_results: int = 2) -> list[SourceResult]:
        self.queries.append(query)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail:
            raise RuntimeError(f"{self.id} exploded")
        return self._results[:max_results]

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        return self._results[:max_results]


def result(source: str, title: str, relevance: float = 0.5, url: str | None = None) -> SourceResult:
    return SourceResult(source=source, title=title, snippet=f"About {title}.", relevance=relevance, url=url)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """The shipped settings with every delay zeroed and search off."""
    config = load_config()
    config.defaults.pacing_delay_sec = 0
    config.defaults.retry_delay_sec = 0
    config.defaults.output_dir = tmp_path / "output"
    config.tuning.search.budget = 0
    config.api_keys = {}
    config.available_providers = set()
    return config


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def session_id(store: SessionStore) -> str:
    session = store.create("Should we migrate the monolith to microservices?")
    store.update(session.id, status=ACTIVE)
    return session.id


@pytest.fixture
def three_agents() -> list[ScriptedAgent]:
    return [
        ScriptedAgent(make_profile("alpha")),
        ScriptedAgent(make_profile("beta")),
        ScriptedAgent(make_profile("gamma")),
    ]
