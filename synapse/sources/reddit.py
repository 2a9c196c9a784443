"""Reddit posts via the public search listing."""

from synapse.models import SourceResult
from synapse.sources.base import SourceAdapter, clean_text

_API = "https://www.reddit.com/search.json"


class RedditAdapter(SourceAdapter):
    id = "reddit"
    name = "Reddit"

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        response = await self._get(
            _API, params={"q": query, "limit": max_results, "sort": "relevance"}
        )
        results = []
        for child in response.json().get("data", {}).get("children", []):
            post = child.get("data", {})
            score = post.get("score") or 0
            results.append(
                SourceResult(
                    source=self.id,
                    title=post.get("title", ""),
                    snippet=clean_text(post.get("selftext") or f"r/{post.get('subreddit', '')}",
                                       limit=300),
                    url=f"https://www.reddit.com{post['permalink']}" if post.get("permalink") else None,
                    relevance=round(min(0.8, 0.45 + score / 5000), 3),
                )
            )
        return results
