"""Competitor discovery tests — query building, degraded queries, de-duplication."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio

from idea_risk.services.competitor_discovery import (
    MAX_QUERIES,
    build_search_queries,
    candidates_from_results,
    discover_competitors,
)


class FakeSearch:
    """Returns canned Serper bodies keyed by query substring; raises for ``fail_on``."""

    def __init__(self, responses=None, fail_on=()):
        self.responses = responses or {}
        self.fail_on = fail_on
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        if any(marker in query for marker in self.fail_on):
            raise ValueError(f"search rejected: {query}")
        for marker, body in self.responses.items():
            if marker in query:
                return body
        return {"organic": []}


def _hit(title, link, snippet="snippet"):
    return {"title": title, "link": link, "snippet": snippet}


class TestBuildSearchQueries:
    def test_base_queries_without_wizard(self):
        queries = build_search_queries("Farm stay booking", "Online booking for farm stays")
        assert queries == [
            "Farm stay booking competitors",
            "Online booking for farm stays alternatives",
            "best Online booking for farm stays alternatives",
        ]

    def test_wizard_context_queries_capped(self):
        answers = {
            "target_customer": "Urban families looking for weekend trips outside the city",
            "location": "Maharashtra, India",
            "business_type": "B2B",
        }
        queries = build_search_queries("Farm stay booking", "Booking platform", answers)
        assert len(queries) == MAX_QUERIES
        assert queries[2] == "Farm stay booking Urban families looking for weekend competitors"
        assert queries[3] == "Farm stay booking Maharashtra, India alternatives"

    def test_b2b_query_when_room(self):
        queries = build_search_queries("Fleet telematics", "GPS tracking", {"business_type": "B2B SaaS"})
        assert "Fleet telematics B2B enterprise software" in queries


class TestCandidatesFromResults:
    def test_skips_hits_without_title_or_link(self):
        results = [{"organic": [
            _hit("Stripe | Payments", "https://stripe.com"),
            {"title": "No link"},
            {"link": "https://nolink.example"},
        ]}, {"knowledgeGraph": {}}]
        candidates = candidates_from_results(results)
        assert [c.name for c in candidates] == ["Stripe"]
        assert candidates[0].source == "serper_search"
        assert candidates[0].description == "snippet"


class TestDiscoverCompetitors:
    def test_merges_and_dedupes_across_queries(self):
        search = FakeSearch(responses={
            "competitors": {"organic": [
                _hit("Acme | Farm stays", "https://www.acme.com/"),
                _hit("Beta - Rural holidays", "https://beta.in/"),
            ]},
            "alternatives": {"organic": [
                _hit("Acme Pricing", "https://acme.com/pricing"),
                _hit("Gamma: Agritourism", "https://gamma.co/"),
            ]},
        })
        candidates = asyncio.run(discover_competitors(
            "Farm stay booking", "Booking platform", None, search,
        ))
        assert [c.name for c in candidates] == ["Acme", "Beta", "Gamma"]
        assert len(search.queries) == 3

    def test_failing_query_degrades_to_empty(self):
        search = FakeSearch(
            responses={"alternatives": {"organic": [_hit("Gamma: Agritourism", "https://gamma.co/")]}},
            fail_on=("competitors",),
        )
        candidates = asyncio.run(discover_competitors(
            "Farm stay booking", "Booking platform", {}, search,
        ))
        assert [c.name for c in candidates] == ["Gamma"]

    def test_all_queries_failing_returns_empty(self):
        search = FakeSearch(fail_on=("competitors", "alternatives"))
        assert asyncio.run(discover_competitors("Farm stay booking", "", None, search)) == []
