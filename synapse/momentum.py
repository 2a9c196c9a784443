"""Conversation "heat": a smoothed 0-1 score plus a heating/steady/cooling direction."""

from collections.abc import Sequence

from config.config_loader import MomentumTuning
from synapse.models import MomentumResult, ScoreSample, Turn
from synapse.signals import DEFAULT_CLASSIFIER, TextSignalClassifier

HEATING = "heating"
STEADY = "steady"
COOLING = "cooling"


class MomentumCalculator:
    def __init__(
        self,
        tuning: MomentumTuning | None = None,
        classifier: TextSignalClassifier = DEFAULT_CLASSIFIER,
    ) -> None:
        self._tuning = tuning or MomentumTuning()
        self._classifier = classifier
        self._history: list[ScoreSample] = []

    @property
    def history(self) -> list[ScoreSample]:
        return list(self._history)

    def calculate(
        self,
        turns: Sequence[Turn],
        consensus_score: float,
        prev_consensus_score: float,
        has_intervention: bool,
        stance_changed: bool,
    ) -> MomentumResult:
        t = self._tuning
        raw = 0.0

        for turn in turns[-t.recent_turns:]:
            if self._classifier.classify(turn.content).pushback:
                raw += t.disagreement_bump

        delta = abs(consensus_score - prev_consensus_score)
        if delta > t.large_delta:
            raw += t.large_delta_bump
        elif delta > t.small_delta:
            raw += t.small_delta_bump

        if has_intervention:
            raw += t.intervention_bump
        if stance_changed:
            raw += t.stance_change_bump
        if turns and self._classifier.classify(turns[-1].content).word_count > t.long_response_words:
            raw += t.long_response_bump

        previous = self._history[-1].score if self._history else 0.0
        if raw == 0 and self._history:
            score = previous - t.decay
        else:
            score = previous * t.carry_over + raw * (1 - t.carry_over)
        score = max(0.0, min(1.0, score))

        window = [s.score for s in self._history[-t.direction_window:]]
        average = sum(window) / len(window) if window else score
        if score - average > t.direction_margin:
            direction = HEATING
        elif average - score > t.direction_margin:
            direction = COOLING
        else:
            direction = STEADY

        self._history.append(ScoreSample(turn=len(turns), score=score))
        return MomentumResult(momentum=score, direction=direction)
