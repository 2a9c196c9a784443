"""Debate driver: council assembly, health checks, scheduling passes, final synthesis, follow-up."""

import logging
from collections.abc import AsyncIterator, Callable, Collection, Mapping, Sequence

from config.config_loader import AppConfig, ProviderConfig
from synapse.assembler import CouncilAssembler
from synapse.cancellation import CancellationToken, OperationCancelled
from synapse.events import (
    AGENT_UNAVAILABLE,
    DEBATE_END,
    DEBATE_START,
    DEBATE_SUMMARY,
    FOLLOWUP_CHUNK,
    FOLLOWUP_DONE,
    ROUND_COMPLETE,
    TURN_PAUSE,
    Event,
    error_event,
    make_event,
)
from synapse.healthcheck import run_health_checks
from synapse.models import AgentProfile
from synapse.orchestrator import PAUSED, DebateState, Orchestrator
from synapse.providers.base import DONE, ERROR, AIAgent, ProviderError
from synapse.providers.registry import build_agent
from synapse.session import SessionStore
from synapse.sources.registry import SourceRegistry
from synapse.stream_filter import ThinkBlockFilter
from synapse.synthesis import SummaryGenerator

logger = logging.getLogger(__name__)

AgentFactory = Callable[[AgentProfile, ProviderConfig, Sequence[str]], AIAgent]


def _merge_keys(config: AppConfig, api_keys: Mapping[str, Sequence[str]] | None) -> dict[str, list[str]]:
    return {**config.api_keys, **{p: list(k) for p, k in (api_keys or {}).items() if k}}


def assemble_council(
    problem: str,
    config: AppConfig,
    factory: AgentFactory = build_agent,
    api_keys: Mapping[str, Sequence[str]] | None = None,
    agent_ids: Collection[str] | None = None,
) -> list[AIAgent]:
    """Select the council for ``problem`` and build a client for each member.

    ``api_keys`` (e.g. supplied with an HTTP request) take precedence over the
    keys found in the environment. ``agent_ids`` restricts the catalogue.
    Returns [] when no agent can be used.
    """
    keys = _merge_keys(config, api_keys)
    catalogue = [a for a in config.agents if agent_ids is None or a.id in agent_ids]
    assembler = CouncilAssembler(config.defaults.min_council, config.defaults.max_council)
    profiles = assembler.assemble(problem, catalogue, {p for p, k in keys.items() if k})

    agents: list[AIAgent] = []
    for profile in profiles:
        provider_cfg = config.providers.get(profile.provider)
        if provider_cfg is None:
            logger.warning("Agent %s skipped: unknown provider %s", profile.id, profile.provider)
            continue
        try:
            agents.append(factory(profile, provider_cfg, keys[profile.provider]))
        except ProviderError as exc:
            logger.warning("Failed to instantiate agent %s: %s", profile.id, exc)
    return agents


async def run_debate(
    session_id: str,
    problem: str,
    orchestrator: Orchestrator,
    store: SessionStore,
    *,
    state: DebateState | None = None,
    factory: AgentFactory = build_agent,
    registry: SourceRegistry | None = None,
    api_keys: Mapping[str, Sequence[str]] | None = None,
    agent_ids: Collection[str] | None = None,
    skip_health_check: bool = False,
    auto_continue: bool = False,
    token: CancellationToken | None = None,
) -> AsyncIterator[Event]:
    """Drive a conversation from where ``state`` left off and yield its events.

    A fresh conversation (no state given, none stored on the session) starts
    with council assembly and health checks. After each pass the debate is
    synthesized once consensus reaches the synthesis threshold or the pass cap
    is hit; otherwise it pauses for the caller, or runs another pass when
    ``auto_continue`` is set.
    """
    config = orchestrator.config
    d = config.defaults
    token = token or CancellationToken()

    if state is None:
        session = store.get(session_id)
        state = session.state if session else None

    if state is None:
        agents = assemble_council(problem, config, factory, api_keys, agent_ids)
        if not agents:
            yield error_event("No API keys configured. Add at least one provider API key.", fatal=True)
            return

        if not skip_health_check:
            results = await run_health_checks(agents, timeout=d.health_check_timeout_sec)
            for agent in agents:
                ok, err = results[agent.name()]
                if not ok:
                    yield make_event(AGENT_UNAVAILABLE, {
                        "agent_id": agent.name(),
                        "reason": err,
                        "phase": "health_check",
                    })
            agents = [a for a in agents if results[a.name()][0]]
            if not agents:
                yield error_event("No agents passed the health check", fatal=True)
                return

        state = orchestrator.new_state(problem, agents, registry)
        store.update(session_id, state=state)

    if state.finished:
        yield error_event("This debate has already concluded", fatal=True)
        return

    if not state.started:
        state.started = True
        yield make_event(DEBATE_START, {
            "problem": state.problem,
            "agents": [
                {**p.roster_entry(), "stance": state.psychology.get_state(p.id).current}
                for p in state.profiles
            ],
        })

    while True:
        completed = False
        async for event in orchestrator.run_round(session_id, state, token):
            yield event
            if event.is_fatal:
                return
            completed = completed or event.type == ROUND_COMPLETE
        if not completed:
            return

        result = state.last_result
        if result.status == PAUSED:
            return

        threshold = config.tuning.convergence.synthesis_threshold
        if result.consensus_score >= threshold or state.passes >= d.max_passes:
            async for event in _synthesize(session_id, state, orchestrator, store, token):
                yield event
            return

        if not auto_continue:
            yield make_event(TURN_PAUSE, {
                "reason": "awaiting_continue",
                "round": result.round_number,
                "consensus": result.consensus_score,
            })
            return
        logger.info("Consensus %.2f below %.2f, running another pass", result.consensus_score, threshold)


async def _synthesize(
    session_id: str,
    state: DebateState,
    orchestrator: Orchestrator,
    store: SessionStore,
    token: CancellationToken,
) -> AsyncIterator[Event]:
    generator = SummaryGenerator(source_name=state.search.source_name)
    agent = generator.pick_agent(state.roster)
    try:
        summary = await token.guard(
            generator.generate(
                agent,
                state.problem,
                state.log,
                state.consensus_score,
                state.research,
                orchestrator.config.prompts,
            )
        )
    except OperationCancelled:
        return

    state.summary = summary
    state.key_moments = list(summary.key_moments)
    state.finished = True
    influence = orchestrator.influence(state)
    store.update(session_id, transcript=state.log.transcript(), summary_agent_id=agent.name())

    yield make_event(DEBATE_SUMMARY, {
        **summary.to_dict(),
        "synthesizer": agent.name(),
        "consensus_history": [s.to_dict() for s in state.consensus_history],
        "quote_links": [q.to_dict() for q in state.quote_links],
        "influence": influence,
    })
    yield make_event(DEBATE_END)


def followup_agent(
    agent_id: str,
    config: AppConfig,
    factory: AgentFactory = build_agent,
    api_keys: Mapping[str, Sequence[str]] | None = None,
) -> AIAgent | None:
    """Rebuild the agent that delivered the verdict, else the first catalogue agent with keys."""
    keys = _merge_keys(config, api_keys)
    preferred = [a for a in config.agents if a.id == agent_id]
    for profile in preferred + [a for a in config.agents if a.id != agent_id]:
        provider_cfg = config.providers.get(profile.provider)
        if provider_cfg is None or not keys.get(profile.provider):
            continue
        try:
            return factory(profile, provider_cfg, keys[profile.provider])
        except ProviderError as exc:
            logger.warning("Follow-up agent %s unavailable: %s", profile.id, exc)
    return None


async def run_followup(
    agent: AIAgent,
    problem: str,
    transcript: str,
    question: str,
    config: AppConfig,
    token: CancellationToken | None = None,
) -> AsyncIterator[Event]:
    """Stream the moderator's answer to a question asked after the verdict."""
    token = token or CancellationToken()
    prompts = config.prompts
    messages = [
        {"role": "system", "content": prompts.followup_system},
        {
            "role": "user",
            "content": prompts.followup_user.format(problem=problem, transcript=transcript, question=question),
        },
    ]
    think = ThinkBlockFilter(config.defaults.think_open_tag, config.defaults.think_close_tag)
    logger.info("Answering follow-up via %s", agent.name())

    stream = agent.stream(messages)
    try:
        while True:
            try:
                chunk = await token.guard(anext(stream), timeout=agent.stall_timeout_sec)
            except StopAsyncIteration:
                break
            except TimeoutError:
                yield error_event(f"Follow-up stalled: no data for {agent.stall_timeout_sec}s")
                return
            if chunk.kind == ERROR:
                yield error_event(chunk.content or "Follow-up failed")
                return
            if chunk.kind == DONE:
                break
            visible = think.feed(chunk.content)
            if visible:
                yield make_event(FOLLOWUP_CHUNK, {"content": visible})
    except OperationCancelled:
        return
    finally:
        await stream.aclose()

    tail = think.flush()
    if tail:
        yield make_event(FOLLOWUP_CHUNK, {"content": tail})
    yield make_event(FOLLOWUP_DONE, {"agent_id": agent.name()})
