"""Tests for synapse/sources: adapters against httpx.MockTransport, and the registry fan-out."""

import asyncio

import httpx
import pytest

from synapse.sources.arxiv import ArxivAdapter
from synapse.sources.duckduckgo import DuckDuckGoAdapter
from synapse.sources.base import clean_text, rank_relevance
from synapse.sources.hackernews import HackerNewsAdapter
from synapse.sources.registry import ADAPTER_CLASSES, SourceRegistry
from synapse.sources.wikipedia import WikipediaAdapter
from tests.conftest import FakeSource, result

ATOM = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <id>http://arxiv.org/abs/2401.00001v1</id>
    <title>Decomposing   Monoliths</title>
    <summary>We study service extraction.</summary>
  </entry>
</feed>"""


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


def test_clean_text_strips_markup():
    assert clean_text('<span class="x">Hello</span> &amp;   world') == "Hello & world"


def test_rank_relevance_decays_with_position():
    assert rank_relevance(0.9, 0) == 0.9
    assert rank_relevance(0.9, 1) < 0.9
    assert rank_relevance(0.1, 50) == 0.05


async def test_wikipedia_adapter_parses_search_hits():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"query": {"search": [
            {"title": "Microservices", "snippet": "<span>Small</span> services"},
            {"title": "Monolithic application", "snippet": "One unit"},
        ]}})

    adapter = WikipediaAdapter(transport=_transport(handler))

    results = await adapter.search("microservices", max_results=2)

    assert seen["params"]["srsearch"] == "microservices"
    assert [r.title for r in results] == ["Microservices", "Monolithic application"]
    assert results[0].snippet == "Small services"
    assert results[0].url == "https://en.wikipedia.org/wiki/Microservices"
    assert results[0].relevance > results[1].relevance


async def test_hackernews_adapter_falls_back_to_item_url():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"hits": [
            {"title": "Ask HN: monoliths?", "points": 120, "num_comments": 40, "objectID": "42"},
        ]})

    results = await HackerNewsAdapter(transport=_transport(handler)).search("monolith")

    assert results[0].url == "https://news.ycombinator.com/item?id=42"
    assert results[0].snippet == "120 points, 40 comments"


async def test_arxiv_adapter_parses_atom():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=ATOM)

    results = await ArxivAdapter(transport=_transport(handler)).search("monolith")

    assert results[0].title == "Decomposing Monoliths"
    assert results[0].url == "http://arxiv.org/abs/2401.00001v1"


async def test_http_error_yields_no_results():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="busy")

    assert await DuckDuckGoAdapter(transport=_transport(handler)).search("anything") == []


async def test_blank_query_is_not_sent():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert await WikipediaAdapter(transport=_transport(handler)).search("   ") == []


def test_default_registry_knows_every_adapter():
    registry = SourceRegistry.default()
    assert len(registry.source_ids) == len(ADAPTER_CLASSES) == 8
    assert registry.source_name("pubmed") == "PubMed"


async def test_registry_merges_and_sorts():
    registry = SourceRegistry([
        FakeSource("a", [result("a", "low", 0.2)]),
        FakeSource("b", [result("b", "high", 0.9)]),
    ])

    results = await registry.search(["a", "b", "a", "missing"], "q")

    assert [r.title for r in results] == ["high", "low"]


async def test_registry_drops_slow_and_failing_sources():
    slow = FakeSource("slow", [result("slow", "late", 1.0)], delay=5)
    registry = SourceRegistry([
        slow,
        FakeSource("broken", fail=True),
        FakeSource("fast", [result("fast", "quick", 0.4)]),
    ])

    results = await asyncio.wait_for(registry.search(["slow", "broken", "fast"], "q", timeout=0.1), timeout=2)

    assert [r.title for r in results] == ["quick"]


async def test_registry_with_no_known_sources():
    assert await SourceRegistry([]).search(["wikipedia"], "q") == []
