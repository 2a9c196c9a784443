"""PubMed articles via NCBI E-utilities (esearch, then esummary)."""

from synapse.models import SourceResult
from synapse.sources.base import SourceAdapter, rank_relevance

_EUTILS = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"


class PubMedAdapter(SourceAdapter):
    id = "pubmed"
    name = "PubMed"

    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        found = await self._get(
            f"{_EUTILS}/esearch.fcgi",
            params={"db": "pubmed", "term": query, "retmax": max_results, "retmode": "json"},
        )
        ids = found.json().get("esearchresult", {}).get("idlist", [])
        if not ids:
            return []

        summary = await self._get(
            f"{_EUTILS}/esummary.fcgi",
            params={"db": "pubmed", "id": ",".join(ids), "retmode": "json"},
        )
        records = summary.json().get("result", {})
        results = []
        for i, pmid in enumerate(ids):
            record = records.get(pmid)
            if not record:
                continue
            journal = record.get("fulljournalname") or record.get("source", "")
            results.append(
                SourceResult(
                    source=self.id,
                    title=record.get("title", ""),
                    snippet=f"{journal}, {record.get('pubdate', '')}".strip(", "),
                    url=f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/",
                    relevance=rank_relevance(0.85, i),
                )
            )
        return results
