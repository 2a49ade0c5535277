"""Domain normalization and candidate de-duplication tests."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from idea_risk.schemas.competitor_schema import CompetitorCandidate
from idea_risk.services.domain_utils import dedup_key, dedupe_candidates, normalize_domain


def _cand(name, website=None):
    return CompetitorCandidate(name=name, website=website, source="serper_search")


class TestNormalizeDomain:
    def test_strips_scheme_www_and_path(self):
        assert normalize_domain("https://www.Acme.com/pricing") == "acme.com"

    def test_plain_http(self):
        assert normalize_domain("http://acme.com") == "acme.com"

    def test_without_scheme_falls_back(self):
        assert normalize_domain("www.acme.com/pricing?x=1") == "acme.com"

    def test_keeps_subdomains_other_than_www(self):
        assert normalize_domain("https://app.acme.io/login") == "app.acme.io"


class TestDedupe:
    def test_same_domain_collapses_to_first(self):
        result = dedupe_candidates([
            _cand("Acme Pricing", "https://www.Acme.com/pricing"),
            _cand("Acme", "http://acme.com"),
        ])
        assert len(result) == 1
        assert result[0].name == "Acme Pricing"
        assert dedup_key(result[0]) == "acme.com"

    def test_name_key_when_no_website(self):
        result = dedupe_candidates([_cand("Farm Stay Co"), _cand("farmstay co")])
        assert [c.name for c in result] == ["Farm Stay Co"]

    def test_preserves_first_seen_order(self):
        result = dedupe_candidates([
            _cand("B", "https://b.com"),
            _cand("A", "https://a.com"),
            _cand("B again", "https://www.b.com/about"),
            _cand("C", "https://c.com"),
        ])
        assert [c.name for c in result] == ["B", "A", "C"]

    def test_idempotent(self):
        candidates = [
            _cand("Acme", "https://www.acme.com"),
            _cand("Acme Blog", "https://acme.com/blog"),
            _cand("Beta"),
            _cand("beta"),
        ]
        once = dedupe_candidates(candidates)
        twice = dedupe_candidates(once)
        assert once == twice

    def test_empty(self):
        assert dedupe_candidates([]) == []
