"""Abstract base for external knowledge-source connectors."""

import html
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from synapse.models import SourceResult

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]+>")
_USER_AGENT = "synapse-council/0.1 (debate research)"


def clean_text(text: str, limit: int = 400) -> str:
    """Strip markup and collapse whitespace."""
    plain = html.unescape(_TAG.sub("", text or ""))
    return " ".join(plain.split())[:limit]


def rank_relevance(base: float, index: int) -> float:
    """Relevance for the ``index``-th hit of a source whose best hit scores ``base``."""
    return round(max(0.05, base * (1.0 - 0.1 * index)), 3)


class SourceAdapter(ABC):
    """Query in, ranked snippets out. ``search`` never raises."""

    id: str = ""
    name: str = ""

    def __init__(
        self,
        timeout_sec: float = 6.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout_sec
        self._transport = transport

    async def search(self, query: str, max_results: int = 2) -> list[SourceResult]:
        if not query.strip():
            return []
        try:
            return (await self._fetch(query, max_results))[:max_results]
        except Exception as exc:
            logger.warning("Source %s failed for %r: %s", self.id, query[:60], exc)
            return []

    @abstractmethod
    async def _fetch(self, query: str, max_results: int) -> list[SourceResult]:
        """Run the query. May raise; ``search`` converts failures to []."""
        ...

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"User-Agent": _USER_AGENT},
            follow_redirects=True,
        ) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response
