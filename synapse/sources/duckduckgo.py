"""DuckDuckGo instant answers (abstract + related topics)."""

from synapse.models import SourceResult
from synapse.sources.base import SourceAdapter, clean_text, rank_relevance

_API = "https://api.duckduckgo.com/"


class DuckDuckGoAdapter(SourceAdapter):
    id = "duckduckgo"
    name = "DuckDuckGo"

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        response = await self._get(
            _API, params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1}
        )
        data = response.json()
        results: list[SourceResult] = []

        if data.get("AbstractText"):
            results.append(
                SourceResult(
                    source=self.id,
                    title=data.get("Heading") or query,
                    snippet=clean_text(data["AbstractText"]),
                    url=data.get("AbstractURL") or None,
                    relevance=0.85,
                )
            )

        for topic in data.get("RelatedTopics", []):
            # Grouped topics nest their entries one level down.
            if "Text" not in topic:
                continue
            results.append(
                SourceResult(
                    source=self.id,
                    title=topic["Text"].split(" - ")[0][:100],
                    snippet=clean_text(topic["Text"]),
                    url=topic.get("FirstURL") or None,
                    relevance=rank_relevance(0.7, len(results)),
                )
            )
            if len(results) >= max_results:
                break
        return results
