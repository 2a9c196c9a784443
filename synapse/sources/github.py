"""GitHub repository search."""

from synapse.models import SourceResult
from synapse.sources.base import SourceAdapter, clean_text

_API = "https://api.github.com/search/repositories"


class GitHubAdapter(SourceAdapter):
    id = "github"
    name = "GitHub"

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        response = await self._get(
            _API, params={"q": query, "sort": "stars", "per_page": max_results}
        )
        results = []
        for repo in response.json().get("items", []):
            stars = repo.get("stargazers_count") or 0
            results.append(
                SourceResult(
                    source=self.id,
                    title=repo["full_name"],
                    snippet=clean_text(repo.get("description") or "") + f" ({stars} stars)",
                    url=repo.get("html_url"),
                    relevance=round(min(0.85, 0.5 + stars / 50_000), 3),
                )
            )
        return results
