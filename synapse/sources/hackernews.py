"""Hacker News stories via the Algolia search API."""

from synapse.models import SourceResult
from synapse.sources.base import SourceAdapter, clean_text

_API = "https://hn.algolia.com/api/v1/search"


class HackerNewsAdapter(SourceAdapter):
    id = "hackernews"
    name = "Hacker News"

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        response = await self._get(
            _API, params={"query": query, "tags": "story", "hitsPerPage": max_results}
        )
        results = []
        for hit in response.json().get("hits", []):
            points = hit.get("points") or 0
            results.append(
                SourceResult(
                    source=self.id,
                    title=hit.get("title") or "Untitled",
                    snippet=clean_text(hit.get("story_text") or f"{points} points, "
                                       f"{hit.get('num_comments') or 0} comments"),
                    url=hit.get("url") or f"https://news.ycombinator.com/item?id={hit.get('objectID')}",
                    relevance=round(min(0.9, 0.5 + points / 1000), 3),
                )
            )
        return results
