"""Council selection: greedy capability coverage over the agents we hold keys for."""

import logging
from collections.abc import Collection, Sequence

from synapse.models import AgentProfile
from synapse.signals import DEFAULT_CLASSIFIER, TextSignalClassifier

logger = logging.getLogger(__name__)

# Coverage dominates; summed strength only breaks ties.
_COVERAGE_WEIGHT = 10.0


class CouncilAssembler:
    def __init__(
        self,
        min_size: int = 2,
        max_size: int = 5,
        classifier: TextSignalClassifier = DEFAULT_CLASSIFIER,
    ) -> None:
        self.min_size = min_size
        self.max_size = max_size
        self._classifier = classifier

    def needed_capabilities(self, problem: str) -> list[str]:
        return list(self._classifier.classify(problem).capability_needs)

    def assemble(
        self,
        problem: str,
        catalogue: Sequence[AgentProfile],
        available_providers: Collection[str],
    ) -> list[AgentProfile]:
        """Pick a council of at most ``max_size`` agents.

        Returns every usable agent when there are no more than ``max_size`` of
        them. Otherwise repeatedly takes the agent covering the most still
        uncovered needed capabilities until the bound is reached or everything
        needed is covered, then tops up to ``min_size``. An empty list means
        no provider is usable, which callers treat as terminal.
        """
        usable = [p for p in catalogue if p.provider in available_providers]
        if not usable:
            logger.warning("No agents usable: none of the configured providers has a key")
            return []

        if len(usable) <= self.max_size:
            return usable

        needed = set(self.needed_capabilities(problem))
        selected: list[AgentProfile] = []
        covered: set[str] = set()

        while len(selected) < self.max_size:
            if needed <= covered and len(selected) >= self.min_size:
                break

            best: AgentProfile | None = None
            best_score = -1.0
            for profile in usable:
                if profile in selected:
                    continue
                new_coverage = len((profile.capability_ids & needed) - covered)
                score = new_coverage * _COVERAGE_WEIGHT + profile.total_strength
                if score > best_score:
                    best, best_score = profile, score

            if best is None:
                break
            selected.append(best)
            covered |= best.capability_ids

        for profile in usable:
            if len(selected) >= self.min_size:
                break
            if profile not in selected:
                selected.append(profile)

        logger.info(
            "Council assembled: %s (needed: %s)",
            ", ".join(p.id for p in selected),
            ", ".join(sorted(needed)),
        )
        return selected
