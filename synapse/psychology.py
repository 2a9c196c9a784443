"""Per-agent conversational stance: initial assignment and post-turn transitions."""

import logging
import random
from collections.abc import Sequence

from config.config_loader import PsychologyTuning
from synapse.models import PsychologicalState
from synapse.signals import DEFAULT_CLASSIFIER, TextSignalClassifier

logger = logging.getLogger(__name__)

CONTRARIAN = "devil_advocate"

# Initial assignment order, chosen so the first few agents start out diverse.
INITIAL_PRIORITY: tuple[str, ...] = (
    "analytical",
    "curious",
    "skeptical",
    "enthusiastic",
    "synthesizer",
    "provocateur",
    "concessive",
    CONTRARIAN,
)

STANCES: tuple[str, ...] = tuple(sorted(INITIAL_PRIORITY))


class PsychologicalStateEngine:
    def __init__(
        self,
        tuning: PsychologyTuning | None = None,
        classifier: TextSignalClassifier = DEFAULT_CLASSIFIER,
        rng: random.Random | None = None,
    ) -> None:
        self._tuning = tuning or PsychologyTuning()
        self._classifier = classifier
        self._rng = rng or random.Random()
        self._states: dict[str, PsychologicalState] = {}

    def assign_initial_states(self, agent_ids: Sequence[str]) -> dict[str, PsychologicalState]:
        self._states = {
            agent_id: PsychologicalState(
                agent_id=agent_id,
                current=INITIAL_PRIORITY[i % len(INITIAL_PRIORITY)],
            )
            for i, agent_id in enumerate(agent_ids)
        }
        return dict(self._states)

    def get_state(self, agent_id: str) -> PsychologicalState | None:
        return self._states.get(agent_id)

    @property
    def states(self) -> dict[str, PsychologicalState]:
        return dict(self._states)

    def transition(
        self,
        agent_id: str,
        text: str,
        consensus_score: float,
        turn_number: int,
    ) -> PsychologicalState:
        """Update the stance of the agent who just spoke.

        First rule that fires wins:
          1. consensus above the contrarian threshold and nobody is the
             devil's advocate: this agent becomes it;
          2. the agent's own language matches a different stance;
          3. the stance has been held for ``rotate_after_turns`` turns: rotate
             to a fresh stance.
        Nothing changes on an agent's first-ever turn.
        """
        state = self._states.get(agent_id)
        if state is None:
            raise KeyError(f"No psychological state for agent: {agent_id}")

        state.turns_spoken += 1
        state.turns_in_current += 1
        if state.turns_spoken <= 1:
            return state

        new_stance = state.current
        if consensus_score > self._tuning.contrarian_threshold and not self._any_in(CONTRARIAN):
            new_stance = CONTRARIAN
        else:
            detected = self._detect_stance(text, state.current)
            if detected:
                new_stance = detected
            elif state.turns_in_current >= self._tuning.rotate_after_turns:
                new_stance = self._pick_replacement(state)

        if new_stance != state.current:
            logger.debug(
                "Turn %d: %s stance %s -> %s", turn_number, agent_id, state.current, new_stance
            )
            state.history.append(state.current)
            state.current = new_stance
            state.turns_in_current = 0
        return state

    def _detect_stance(self, text: str, current: str) -> str | None:
        for cue in self._classifier.classify(text).stance_cues:
            if cue != current:
                return cue
        return None

    def _any_in(self, stance: str) -> bool:
        return any(s.current == stance for s in self._states.values())

    def _pick_replacement(self, state: PsychologicalState) -> str:
        held_by_others = {
            s.current for other_id, s in self._states.items() if other_id != state.agent_id
        }
        recent = set(state.history[-self._tuning.recent_history:])
        different = [s for s in STANCES if s != state.current]

        fresh = [s for s in different if s not in held_by_others and s not in recent]
        if fresh:
            return self._rng.choice(fresh)
        unused = [s for s in different if s not in held_by_others]
        if unused:
            return self._rng.choice(unused)
        return self._rng.choice(different)
