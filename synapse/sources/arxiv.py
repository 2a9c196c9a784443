"""arXiv preprints via the Atom export API."""

import xml.etree.ElementTree as ET

from synapse.models import SourceResult
from synapse.sources.base import SourceAdapter, clean_text, rank_relevance

_API = "https://export.arxiv.org/api/query"
_ATOM = {"atom": "http://www.w3.org/2005/Atom"}


class ArxivAdapter(SourceAdapter):
    id = "arxiv"
    name = "arXiv"

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        response = await self._get(
            _API, params={"search_query": f"all:{query}", "max_results": max_results}
        )
        root = ET.fromstring(response.text)
        results = []
        for i, entry in enumerate(root.findall("atom:entry", _ATOM)):
            results.append(
                SourceResult(
                    source=self.id,
                    title=clean_text(entry.findtext("atom:title", "", _ATOM)),
                    snippet=clean_text(entry.findtext("atom:summary", "", _ATOM), limit=300),
                    url=entry.findtext("atom:id", None, _ATOM),
                    relevance=rank_relevance(0.8, i),
                )
            )
        return results
