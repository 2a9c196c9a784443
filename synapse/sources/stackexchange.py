"""Stack Overflow questions via the Stack Exchange API."""

from synapse.models import SourceResult
from synapse.sources.base import SourceAdapter, clean_text

_API = "https://api.stackexchange.com/2.3/search/advanced"


class StackExchangeAdapter(SourceAdapter):
    id = "stackexchange"
    name = "Stack Overflow"

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        response = await self._get(
            _API,
            params={
                "order": "desc",
                "sort": "relevance",
                "q": query,
                "site": "stackoverflow",
                "pagesize": max_results,
                "filter": "withbody",
            },
        )
        results = []
        for item in response.json().get("items", []):
            score = item.get("score") or 0
            accepted = " (accepted answer)" if item.get("is_answered") else ""
            results.append(
                SourceResult(
                    source=self.id,
                    title=clean_text(item.get("title", "")) + accepted,
                    snippet=clean_text(item.get("body", ""), limit=300),
                    url=item.get("link"),
                    relevance=round(min(0.9, 0.55 + score / 200), 3),
                )
            )
        return results
