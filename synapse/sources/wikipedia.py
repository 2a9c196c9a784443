"""Wikipedia full-text search via the MediaWiki API."""

from urllib.parse import quote

from synapse.models import SourceResult
from synapse.sources.base import SourceAdapter, clean_text, rank_relevance

_API = "https://en.wikipedia.org/w/api.php"


class WikipediaAdapter(SourceAdapter):
    id = "wikipedia"
    name = "Wikipedia"

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        response = await self._get(
            _API,
            params={
                "action": "query",
                "list": "search",
                "srsearch": query,
                "srlimit": max_results,
                "format": "json",
            },
        )
        hits = response.json().get("query", {}).get("search", [])
        return [
            SourceResult(
                source=self.id,
                title=hit["title"],
                snippet=clean_text(hit.get("snippet", "")),
                url=f"https://en.wikipedia.org/wiki/{quote(hit['title'].replace(' ', '_'))}",
                relevance=rank_relevance(0.9, i),
            )
            for i, hit in enumerate(hits)
        ]
