"""One scheduling pass of a debate: turns, streaming with retry, derived signals, events.

Everything a pass touches lives on ``DebateState`` so the debate driver can
run further passes over the same conversation. Within a pass the transcript,
scheduler and stance map are owned by this loop alone; the session store's
intervention queue is the only input written from outside, and it is drained
at turn boundaries.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from config.config_loader import AppConfig
from synapse.assembler import CouncilAssembler
from synapse.cancellation import CancellationToken, OperationCancelled
from synapse.consensus import ConsensusDetector
from synapse.events import (
    AGENT_CHUNK,
    AGENT_DONE,
    AGENT_THINKING,
    AGENT_UNAVAILABLE,
    CONSENSUS_UPDATE,
    MOMENTUM_UPDATE,
    QUOTE_LINKED,
    RESEARCH_RESULTS,
    ROUND_COMPLETE,
    STANCE_CHANGE,
    TURN_PAUSE,
    USER_INTERVENTION,
    Event,
    error_event,
    make_event,
)
from synapse.influence import InfluenceScorer
from synapse.memory import ContextLog
from synapse.models import (
    INTERVENTION_STANCE,
    USER_ID,
    AgentProfile,
    Intervention,
    KeyMoment,
    QuoteLink,
    RoundResult,
    ScoreSample,
    SourceResult,
    StructuredSummary,
)
from synapse.momentum import MomentumCalculator
from synapse.prompts import build_reaction_context, build_turn_messages
from synapse.providers.base import DONE, ERROR, TEXT_DELTA, AIAgent, Message, is_transient_error
from synapse.psychology import PsychologicalStateEngine
from synapse.quotes import QuoteDetector
from synapse.search import SearchRouter
from synapse.session import SessionStore
from synapse.signals import DEFAULT_CLASSIFIER, TextSignalClassifier
from synapse.sources.registry import SourceRegistry
from synapse.stream_filter import ThinkBlockFilter
from synapse.turns import TurnManager

logger = logging.getLogger(__name__)

PAUSED = "paused"
CANCELLED = "cancelled"

_RESEARCH_SNIPPET_CHARS = 200


@dataclass
class DebateState:
    """Everything that persists across the scheduling passes of one conversation."""

    problem: str
    roster: list[AIAgent]
    log: ContextLog
    psychology: PsychologicalStateEngine
    momentum: MomentumCalculator
    search: SearchRouter
    consensus_score: float = 0.0
    consensus_history: list[ScoreSample] = field(default_factory=list)
    quote_links: list[QuoteLink] = field(default_factory=list)
    research: list[SourceResult] = field(default_factory=list)
    key_moments: list[KeyMoment] = field(default_factory=list)
    last_result: RoundResult | None = None
    summary: StructuredSummary | None = None
    round_offset: int = 0     # rounds completed by earlier passes
    turn_offset: int = 0      # scheduler turns taken by earlier passes
    passes: int = 0
    started: bool = False
    finished: bool = False

    @property
    def profiles(self) -> list[AgentProfile]:
        return [agent.profile for agent in self.roster]


@dataclass
class _TurnOutcome:
    text: str = ""
    ok: bool = False
    cancelled: bool = False


class Orchestrator:
    def __init__(
        self,
        config: AppConfig,
        store: SessionStore,
        classifier: TextSignalClassifier = DEFAULT_CLASSIFIER,
    ) -> None:
        self._config = config
        self._defaults = config.defaults
        self._tuning = config.tuning
        self._store = store
        self._classifier = classifier
        self._consensus = ConsensusDetector(config.tuning.consensus, classifier)
        self._quotes = QuoteDetector()
        self._influence = InfluenceScorer(config.tuning.influence)

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def store(self) -> SessionStore:
        return self._store

    def assembler(self) -> CouncilAssembler:
        return CouncilAssembler(
            min_size=self._defaults.min_council,
            max_size=self._defaults.max_council,
            classifier=self._classifier,
        )

    def new_state(
        self,
        problem: str,
        roster: list[AIAgent],
        registry: SourceRegistry | None = None,
    ) -> DebateState:
        psychology = PsychologicalStateEngine(self._tuning.psychology, self._classifier)
        psychology.assign_initial_states([agent.profile.id for agent in roster])
        registry = registry or SourceRegistry.default(timeout_sec=self._tuning.search.timeout_sec)
        return DebateState(
            problem=problem,
            roster=list(roster),
            log=ContextLog(),
            psychology=psychology,
            momentum=MomentumCalculator(self._tuning.momentum, self._classifier),
            search=SearchRouter(registry, self._tuning.search, self._classifier),
        )

    def influence(self, state: DebateState) -> dict[str, float]:
        return self._influence.score(
            state.log.turns, state.key_moments, state.consensus_history, state.quote_links
        )

    async def run_round(
        self,
        session_id: str,
        state: DebateState,
        token: CancellationToken | None = None,
    ) -> AsyncIterator[Event]:
        """Run one pass and yield its events in order.

        Ends with ``round:complete`` (carrying the RoundResult), or with a fatal
        ``error`` when no agent is available or every turn failed. A cancelled
        pass stops without further events.
        """
        token = token or CancellationToken()
        d = self._defaults

        if not state.roster:
            yield error_event("No agents available for this round", fatal=True)
            return

        agents = {agent.profile.id: agent for agent in state.roster}
        tm = TurnManager(
            list(agents),
            max_turns=len(agents) * d.turns_per_agent,
            max_rounds=d.max_rounds,
        )
        state.passes += 1
        successes = 0
        status: str | None = None
        logger.info("Pass %d starting with %d agents", state.passes, len(agents))

        while not tm.is_complete():
            if token.cancelled:
                status = CANCELLED
                break

            interventions = self._store.drain_interventions(session_id)
            for intervention in interventions:
                yield self._commit_intervention(state, intervention)

            if self._store.is_paused(session_id):
                self._store.set_paused(session_id, False)
                status = PAUSED
                yield make_event(TURN_PAUSE, {"reason": "paused", "turn": state.turn_offset + tm.turn})
                break

            agent_id = tm.next_agent()
            if agent_id is None:
                break
            agent = agents[agent_id]
            stance = state.psychology.get_state(agent_id).current
            message_id = f"msg-{len(state.log)}-{agent_id}"
            turn_number = state.turn_offset + tm.turn

            research = ""
            last = state.log.last
            decision = state.search.decide(last.content if last else state.problem, state.problem, turn_number)
            if decision.should_search:
                try:
                    results = await token.guard(state.search.search(decision))
                except OperationCancelled:
                    status = CANCELLED
                    break
                if results:
                    state.research.extend(results)
                    research = state.search.format_for_context(results)
                    yield make_event(RESEARCH_RESULTS, {
                        "query": decision.query,
                        "reason": decision.reason,
                        "results": [
                            {
                                "source": r.source,
                                "source_name": state.search.source_name(r.source),
                                "title": r.title,
                                "snippet": r.snippet[:_RESEARCH_SNIPPET_CHARS],
                                "url": r.url,
                            }
                            for r in results
                        ],
                    })

            yield make_event(AGENT_THINKING, {
                "agent_id": agent_id,
                "message_id": message_id,
                "stance": stance,
            })

            messages = build_turn_messages(
                self._config.prompts,
                state.problem,
                agent.profile,
                stance,
                state.log,
                turn_number,
                state.profiles,
                research=research,
                has_intervention=bool(interventions),
                reactions=build_reaction_context(self._store.reactions(session_id), state.log, agent_id),
                history_turns=d.history_turns,
            )

            outcome = _TurnOutcome()
            async for event in self._stream_turn(agent, messages, message_id, token, outcome):
                yield event
            if outcome.cancelled:
                status = CANCELLED
                break

            if outcome.ok:
                successes += 1
                for event in self._commit_turn(
                    state, tm, agent, outcome.text, stance, message_id, turn_number, bool(interventions)
                ):
                    yield event
            else:
                tm.mark_unavailable(agent_id)

            tm.advance_turn()

            if not tm.is_complete() and not self._store.has_pending_interventions(session_id):
                if await token.sleep(d.pacing_delay_sec):
                    status = CANCELLED
                    break

        state.turn_offset += tm.turn
        state.round_offset = state.turn_offset // len(agents)

        if status == CANCELLED:
            logger.info("Pass %d cancelled after %d turns", state.passes, tm.turn)
            return

        if successes == 0 and status != PAUSED:
            logger.warning("Pass %d: every agent failed", state.passes)
            yield error_event("All agents failed this round", fatal=True)
            return

        result = RoundResult(
            round_number=state.passes,
            status=status or tm.state,
            consensus_score=state.consensus_score,
            consensus_history=list(state.consensus_history),
            momentum_history=state.momentum.history,
            influence=self.influence(state),
            quote_links=list(state.quote_links),
            turns_completed=successes,
        )
        state.last_result = result
        logger.info(
            "Pass %d %s: %d turns, consensus %.2f",
            state.passes, result.status, successes, result.consensus_score,
        )
        yield make_event(ROUND_COMPLETE, result.to_dict())

    def _commit_intervention(self, state: DebateState, intervention: Intervention) -> Event:
        intervention.category = self._classifier.classify(intervention.content).intervention_category
        turn = state.log.add_turn(
            USER_ID,
            f"[{intervention.category.upper()}] {intervention.content}",
            INTERVENTION_STANCE,
            "User",
            message_id=f"user-{len(state.log)}",
        )
        return make_event(USER_INTERVENTION, {
            "message_id": turn.message_id,
            "content": intervention.content,
            "category": intervention.category,
            "timestamp": intervention.timestamp,
        })

    def _commit_turn(
        self,
        state: DebateState,
        tm: TurnManager,
        agent: AIAgent,
        text: str,
        stance: str,
        message_id: str,
        turn_number: int,
        has_intervention: bool,
    ) -> list[Event]:
        """Write a successful turn and derive every per-turn signal from it."""
        profile = agent.profile
        events: list[Event] = []

        turn = state.log.add_turn(profile.id, text, stance, profile.display_name, message_id)
        tm.mark_spoken(profile.id)

        psych = state.psychology.transition(profile.id, text, state.consensus_score, turn_number)
        stance_changed = psych.current != stance
        if stance_changed:
            events.append(make_event(STANCE_CHANGE, {
                "agent_id": profile.id,
                "from": stance,
                "to": psych.current,
            }))

        previous = state.consensus_score
        state.consensus_score = self._consensus.evaluate(state.log.turns)
        state.consensus_history.append(ScoreSample(turn=turn.turn_number, score=state.consensus_score))
        events.append(make_event(CONSENSUS_UPDATE, {
            "score": state.consensus_score,
            "turn": turn.turn_number,
        }))

        momentum = state.momentum.calculate(
            state.log.turns, state.consensus_score, previous, has_intervention, stance_changed
        )
        events.append(make_event(MOMENTUM_UPDATE, {
            "momentum": momentum.momentum,
            "direction": momentum.direction,
        }))

        for link in self._quotes.detect(turn, state.profiles, state.log.turns[:-1]):
            state.quote_links.append(link)
            events.append(make_event(QUOTE_LINKED, link.to_dict()))

        if tm.all_spoken and state.consensus_score > self._convergence_threshold(state, tm):
            logger.info("Converged at consensus %.2f", state.consensus_score)
            tm.mark_converged()
        return events

    def _convergence_threshold(self, state: DebateState, tm: TurnManager) -> float:
        c = self._tuning.convergence
        if (state.turn_offset + tm.turn) // len(state.roster) <= c.early_round_limit:
            return c.early_threshold
        return c.late_threshold

    async def _stream_turn(
        self,
        agent: AIAgent,
        messages: list[Message],
        message_id: str,
        token: CancellationToken,
        outcome: _TurnOutcome,
    ) -> AsyncIterator[Event]:
        """Stream one turn, retrying transient failures that happen before any output.

        Once text has been relayed a failure still closes the turn with a
        partial ``agent:done`` before the ``agent:unavailable`` notice.
        """
        d = self._defaults
        agent_id = agent.profile.id
        attempts = 1 + d.retry_attempts

        for attempt in range(1, attempts + 1):
            think = ThinkBlockFilter(d.think_open_tag, d.think_close_tag)
            parts: list[str] = []
            error: str | None = None
            stream = agent.stream(messages)
            try:
                while True:
                    try:
                        chunk = await token.guard(anext(stream), timeout=agent.stall_timeout_sec)
                    except StopAsyncIteration:
                        break
                    except TimeoutError:
                        error = f"Stream stalled: no data for {agent.stall_timeout_sec}s"
                        break
                    if chunk.kind == ERROR:
                        error = chunk.content or "Unknown stream error"
                        break
                    if chunk.kind == DONE:
                        break
                    if chunk.kind == TEXT_DELTA:
                        visible = think.feed(chunk.content)
                        if visible:
                            parts.append(visible)
                            yield self._chunk(agent_id, message_id, visible)
                if error is None:
                    tail = think.flush()
                    if tail:
                        parts.append(tail)
                        yield self._chunk(agent_id, message_id, tail)
            except OperationCancelled:
                outcome.cancelled = True
                if parts:
                    yield make_event(AGENT_DONE, {"agent_id": agent_id, "message_id": message_id, "partial": True})
                return
            finally:
                await stream.aclose()

            text = "".join(parts).strip()
            if error is None and text:
                outcome.text = text
                outcome.ok = True
                yield make_event(AGENT_DONE, {"agent_id": agent_id, "message_id": message_id})
                return
            if error is None:
                error = "Empty response"
                transient = False
            else:
                transient = is_transient_error(error)

            if parts:
                logger.warning("%s failed mid-stream: %s", agent_id, error)
                yield make_event(AGENT_DONE, {"agent_id": agent_id, "message_id": message_id, "partial": True})
                break

            if transient and attempt < attempts:
                logger.warning(
                    "%s attempt %d/%d failed, retrying in %.1fs: %s",
                    agent_id, attempt, attempts, d.retry_delay_sec, error,
                )
                if await token.sleep(d.retry_delay_sec):
                    outcome.cancelled = True
                    return
                continue

            logger.warning("%s failed after %d attempt(s): %s", agent_id, attempt, error)
            break

        yield make_event(AGENT_UNAVAILABLE, {
            "agent_id": agent_id,
            "message_id": message_id,
            "reason": error,
        })

    @staticmethod
    def _chunk(agent_id: str, message_id: str, content: str) -> Event:
        return make_event(AGENT_CHUNK, {"agent_id": agent_id, "message_id": message_id, "content": content})
