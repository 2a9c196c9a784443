"""Heuristic agreement score over the most recent transcript turns."""

from collections.abc import Sequence

from config.config_loader import ConsensusTuning
from synapse.models import Turn
from synapse.signals import DEFAULT_CLASSIFIER, TextSignalClassifier


class ConsensusDetector:
    """Estimate genuine convergence vs polite agreement, 0.0 to 1.0.

    Only the last ``window`` turns are weighed. Until ``damping_min_turns``
    turns exist the raw score is damped, since agents agree readily when the
    exchange is still shallow.
    """

    def __init__(
        self,
        tuning: ConsensusTuning | None = None,
        classifier: TextSignalClassifier = DEFAULT_CLASSIFIER,
    ) -> None:
        self._tuning = tuning or ConsensusTuning()
        self._classifier = classifier

    def evaluate(self, turns: Sequence[Turn]) -> float:
        t = self._tuning
        qualifying = [turn for turn in turns if turn.content.strip()]
        recent = qualifying[-t.window:]

        agreement = disagreement = substantive = shifts = 0
        for turn in recent:
            signals = self._classifier.classify(turn.content)
            if signals.agreement:
                agreement += 1
                if signals.causal and signals.char_count > t.substantive_min_chars:
                    substantive += 1
            if signals.disagreement:
                disagreement += 1
            if signals.stance_shift:
                shifts += 1

        if agreement + disagreement == 0:
            return t.neutral

        support = (
            agreement * t.agreement_weight
            + substantive * t.substantive_weight
            + shifts * t.stance_shift_weight
        )
        raw = support / (support + disagreement * t.disagreement_weight)

        if len(qualifying) < t.damping_min_turns:
            return max(t.floor, min(raw * t.damping_factor, t.damped_ceiling))
        return max(t.floor, min(raw, 1.0))
