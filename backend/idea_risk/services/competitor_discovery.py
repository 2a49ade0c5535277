"""Competitor Discovery — multi-query web search for candidate competitors.

Pipeline
--------
1. Build up to 4 search queries from the idea, the solution and wizard context
2. Run every query concurrently (``asyncio.gather``), each through the retry layer
3. A query that still fails degrades to ``{"organic": []}`` (logged, not raised)
4. Turn organic hits into ``CompetitorCandidate`` (name via ``extract_company_name``)
5. De-duplicate by domain
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from ..exceptions import AnalysisCancelledError
from ..schemas.competitor_schema import CompetitorCandidate
from .company_name import extract_company_name
from .domain_utils import dedupe_candidates
from .retry import CancelToken, call_with_retry, classify_search_error
from .wizard_context import answer_text

logger = logging.getLogger(__name__)

MAX_QUERIES = 4
SEARCH_SOURCE = "serper_search"


def _first_answer_by_key(answers: Mapping[str, Any], *keywords: str) -> Optional[str]:
    """Answer text for the first key containing a keyword, if that answer is set."""
    for key, value in answers.items():
        if any(word in key.lower() for word in keywords):
            return answer_text(value) if value else None
    return None


def build_search_queries(
    idea_text: str,
    solution: str,
    wizard_answers: Optional[Mapping[str, Any]] = None,
) -> List[str]:
    """Two base queries, up to three context queries, one filler; capped at 4."""
    queries = [
        f"{idea_text} competitors",
        f"{solution} alternatives",
    ]

    if wizard_answers:
        target = _first_answer_by_key(wizard_answers, "target", "customer", "audience")
        if target:
            keywords = " ".join(target.split(" ")[:5])
            queries.append(f"{idea_text} {keywords} competitors")

        location = _first_answer_by_key(wizard_answers, "location", "geographic", "market")
        if location:
            queries.append(f"{idea_text} {location} alternatives")

        for key, value in wizard_answers.items():
            lowered = key.lower()
            if "business" in lowered and "type" in lowered:
                if value and "b2b" in answer_text(value).lower():
                    queries.append(f"{idea_text} B2B enterprise software")
                break

    queries.append(f"best {solution} alternatives")
    return queries[:MAX_QUERIES]


def candidates_from_results(results: List[Dict[str, Any]]) -> List[CompetitorCandidate]:
    """Flatten organic hits that carry both a title and a link."""
    candidates: List[CompetitorCandidate] = []
    for result in results:
        organic = result.get("organic") if isinstance(result, dict) else None
        if not isinstance(organic, list):
            continue
        for item in organic:
            if not isinstance(item, dict):
                continue
            title, link = item.get("title"), item.get("link")
            if not title or not link:
                continue
            name = extract_company_name(title, link)
            if not name.strip():
                continue
            candidates.append(
                CompetitorCandidate(
                    name=name,
                    website=link,
                    description=item.get("snippet"),
                    source=SEARCH_SOURCE,
                )
            )
    return candidates


async def discover_competitors(
    idea_text: str,
    solution: str,
    wizard_answers: Optional[Mapping[str, Any]],
    search_client,
    *,
    cancel_token: Optional[CancelToken] = None,
) -> List[CompetitorCandidate]:
    """Search for competitors and return de-duplicated candidates.

    Parameters
    ----------
    idea_text, solution : str
        Used to build the queries.  ``solution`` may be empty.
    wizard_answers : mapping, optional
        Adds target-customer, location and B2B queries when present.
    search_client
        Anything with ``async search(query) -> dict`` (``SerperSearchClient``).

    Returns
    -------
    list[CompetitorCandidate]
        First-seen order, at most one per domain.
    """
    queries = build_search_queries(idea_text, solution, wizard_answers)
    print(f"🔎 [DISCOVERY] Serper queries: {queries}")

    async def _run(query: str) -> Dict[str, Any]:
        return await call_with_retry(
            lambda: search_client.search(query),
            classify_search_error,
            operation_name=f"Serper search '{query[:40]}'",
            cancel_token=cancel_token,
        )

    results = await asyncio.gather(
        *(_run(q) for q in queries),
        return_exceptions=True,
    )

    usable: List[Dict[str, Any]] = []
    for query, result in zip(queries, results):
        if isinstance(result, BaseException):
            if isinstance(result, (asyncio.CancelledError, AnalysisCancelledError)):
                raise result
            logger.warning("Serper search failed for %r: %s — using empty results", query, result)
            usable.append({"organic": []})
        else:
            usable.append(result)

    candidates = candidates_from_results(usable)
    unique = dedupe_candidates(candidates)
    print(f"🔎 [DISCOVERY] {len(candidates)} hits → {len(unique)} unique candidates")
    return unique
