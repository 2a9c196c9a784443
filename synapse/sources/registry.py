"""Fan a query out to several knowledge sources under one aggregate deadline."""

import asyncio
import logging
from collections.abc import Iterable, Sequence

from synapse.models import SourceResult
from synapse.sources.arxiv import ArxivAdapter
from synapse.sources.base import SourceAdapter
from synapse.sources.duckduckgo import DuckDuckGoAdapter
from synapse.sources.github import GitHubAdapter
from synapse.sources.hackernews import HackerNewsAdapter
from synapse.sources.pubmed import PubMedAdapter
from synapse.sources.reddit import RedditAdapter
from synapse.sources.stackexchange import StackExchangeAdapter
from synapse.sources.wikipedia import WikipediaAdapter

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: tuple[type[SourceAdapter], ...] = (
    WikipediaAdapter,
    RedditAdapter,
    DuckDuckGoAdapter,
    HackerNewsAdapter,
    StackExchangeAdapter,
    ArxivAdapter,
    GitHubAdapter,
    PubMedAdapter,
)


class SourceRegistry:
    def __init__(self, adapters: Iterable[SourceAdapter]) -> None:
        self._adapters = {adapter.id: adapter for adapter in adapters}

    @classmethod
    def default(cls, timeout_sec: float = 6.0) -> "SourceRegistry":
        return cls(adapter_cls(timeout_sec=timeout_sec) for adapter_cls in ADAPTER_CLASSES)

    @property
    def source_ids(self) -> list[str]:
        return list(self._adapters)

    def get(self, source_id: str) -> SourceAdapter | None:
        return self._adapters.get(source_id)

    def source_name(self, source_id: str) -> str:
        adapter = self._adapters.get(source_id)
        return adapter.name if adapter else source_id

    async def search(
        self,
        source_ids: Sequence[str],
        query: str,
        max_results: int = 2,
        timeout: float = 8.0,
    ) -> list[SourceResult]:
        """Query every known source in parallel and keep what arrives within ``timeout``.

        Sources still running at the deadline are cancelled. A source that
        raises contributes nothing. Results are sorted by relevance, best first.
        """
        tasks = {
            asyncio.create_task(self._adapters[sid].search(query, max_results)): sid
            for sid in dict.fromkeys(source_ids)
            if sid in self._adapters
        }
        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                "Search deadline (%.1fs) hit; dropped: %s",
                timeout,
                ", ".join(sorted(tasks[t] for t in pending)),
            )
            await asyncio.gather(*pending, return_exceptions=True)

        results: list[SourceResult] = []
        for task in done:
            if task.exception() is not None:
                logger.warning("Source %s raised: %s", tasks[task], task.exception())
                continue
            results.extend(task.result())
        results.sort(key=lambda r: r.relevance, reverse=True)
        return results
