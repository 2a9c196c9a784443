"""Per-turn search policy: whether to consult live sources, which ones, and with what query."""

import logging
import re

from config.config_loader import SearchTuning
from synapse.models import SearchDecision, SourceResult
from synapse.signals import DEFAULT_CLASSIFIER, TextSignalClassifier
from synapse.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)

# topic -> (sources to consult, reason surfaced to the client)
TOPIC_SOURCES: dict[str, tuple[tuple[str, ...], str]] = {
    "contestable": (("wikipedia", "pubmed", "arxiv"), "Contestable claim detected, needs verification"),
    "recency": (("duckduckgo", "reddit", "hackernews"), "Recency signal, needs current data"),
    "technical": (("stackexchange", "github"), "Technical topic, needs implementation context"),
    "scientific": (("pubmed", "arxiv"), "Scientific topic, needs academic sources"),
    "community": (("reddit", "hackernews"), "Community perspective needed"),
    "knowledge_gap": (("wikipedia", "duckduckgo"), "Knowledge gap, needs factual grounding"),
    "product": (("duckduckgo", "reddit"), "Product or brand lookup"),
}

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


class SearchRouter:
    """Owns the per-conversation search budget."""

    def __init__(
        self,
        registry: SourceRegistry,
        tuning: SearchTuning | None = None,
        classifier: TextSignalClassifier = DEFAULT_CLASSIFIER,
    ) -> None:
        self._registry = registry
        self._tuning = tuning or SearchTuning()
        self._classifier = classifier
        self._searches_used = 0

    @property
    def searches_used(self) -> int:
        return self._searches_used

    @property
    def budget_left(self) -> int:
        return max(0, self._tuning.budget - self._searches_used)

    def decide(self, content: str, problem: str, turn_number: int) -> SearchDecision:
        t = self._tuning
        if self._searches_used >= t.budget:
            return SearchDecision(False, "Search budget exhausted")
        if turn_number == 0:
            return SearchDecision(False, "First turn, use training knowledge")
        if turn_number % 2 != 0 and turn_number < t.early_turn_limit:
            return SearchDecision(False, "Skipping search this turn")

        topics = self._classifier.classify(f"{content} {problem}").search_topics
        sources: list[str] = []
        for topic in topics:
            for source_id in TOPIC_SOURCES.get(topic, ((), ""))[0]:
                if source_id not in sources:
                    sources.append(source_id)
        if not sources:
            return SearchDecision(False, "No search signals detected")

        decision = SearchDecision(
            should_search=True,
            reason=TOPIC_SOURCES[topics[0]][1],
            sources=sources[: t.max_sources],
            query=self.extract_query(content, problem),
        )
        logger.debug("Turn %d search: %s via %s", turn_number, decision.query, decision.sources)
        return decision

    def extract_query(self, content: str, problem: str) -> str:
        """Longest mid-length sentence of ``content``, else the problem itself."""
        t = self._tuning
        sentences = [
            s.strip()
            for s in _SENTENCE_SPLIT.split(content.replace("\n", " "))
            if t.min_sentence_chars < len(s.strip()) < t.max_sentence_chars
        ]
        if sentences:
            return max(sentences, key=len)[: t.max_query_chars]
        return problem[: t.max_query_chars]

    async def search(self, decision: SearchDecision) -> list[SourceResult]:
        if not decision.should_search or self._searches_used >= self._tuning.budget:
            return []
        self._searches_used += 1
        return await self._registry.search(
            decision.sources,
            decision.query,
            max_results=self._tuning.max_results_per_source,
            timeout=self._tuning.timeout_sec,
        )

    def source_name(self, source_id: str) -> str:
        return self._registry.source_name(source_id)

    @staticmethod
    def format_for_context(results: list[SourceResult]) -> str:
        if not results:
            return ""
        lines = []
        for r in results:
            url = f" ({r.url})" if r.url else ""
            lines.append(f"[{r.source.upper()}, retrieved live] {r.title}{url}\n  {r.snippet}")
        body = "\n\n".join(lines)
        return f"\n--- LIVE RESEARCH RESULTS ---\n{body}\n--- END RESEARCH ---\n"
