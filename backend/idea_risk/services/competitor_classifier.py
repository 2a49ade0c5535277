"""Competitor Classifier — batched model classification of search candidates.

Pipeline
--------
1. Split candidates into batches of ``BATCH_SIZE`` (8)
2. Classify batches one at a time (one request in flight per run)
3. Each batch: prompt -> retried model call -> JSON array -> validated records
4. Fold the per-batch outcomes; failed batches are logged and skipped
5. Keep only ``keep=true`` records whose relevance is not ``none``

A batch whose output cannot be parsed counts as an empty success; a
batch whose call fails after retries counts as a failure.  Neither stops
the remaining batches.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..agents.idea_analysis.http_client import RetryConfig
from ..constants import BATCH_SIZE
from ..exceptions import LLMResponseError
from ..schemas.competitor_schema import AnalyzedCompetitor, CompetitorCandidate
from ..schemas.idea_schema import IdeaContext
from .openai_client import extract_json_array
from .retry import CancelToken, classify_llm_error, try_call_with_retry
from .wizard_context import founder_context

logger = logging.getLogger(__name__)

CLASSIFY_MAX_TOKENS = 4000
CLASSIFY_TEMPERATURE = 0.2

_RULE = "━" * 80

_FOUNDER_LABELS = {
    "target_customer": "Target Customer",
    "location": "Location/Market",
    "experience": "Industry Experience",
    "budget": "Available Budget",
    "commitment": "Commitment Level",
    "technical": "Technical Capability",
}

_FOUNDER_HINTS = {
    "target_customer": "use this for positioning",
    "location": "local advantage? regional focus?",
    "experience": "domain expertise advantage?",
    "budget": "pricing strategy? lean approach?",
    "commitment": "timeline implications?",
    "technical": "build vs buy decisions?",
}


@dataclass
class BatchOutcome:
    """Result of classifying one batch: records on success, the error otherwise."""

    index: int
    competitors: List[AnalyzedCompetitor] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunk_candidates(
    candidates: Sequence[CompetitorCandidate],
    size: int = BATCH_SIZE,
) -> List[List[CompetitorCandidate]]:
    return [list(candidates[i: i + size]) for i in range(0, len(candidates), size)]


def build_classification_prompt(
    context: IdeaContext,
    batch: Sequence[CompetitorCandidate],
    wizard_answers: Optional[Mapping[str, Any]],
) -> str:
    founder = founder_context(wizard_answers or {})
    founder_lines = "\n".join(
        f"{_FOUNDER_LABELS[name]}: {value}" for name, value in founder.items()
    ) or "No founder context provided."
    founder_hints = "\n".join(
        f'   - {_FOUNDER_LABELS[name]}: "{value}" ({_FOUNDER_HINTS[name]})'
        for name, value in founder.items()
    )
    batch_json = json.dumps(
        [c.model_dump(exclude_none=True) for c in batch], indent=2, ensure_ascii=False,
    )

    return f"""
You are analyzing competitors for this startup idea:

Problem: {context.problem}
Audience: {context.audience}
Solution: {context.solution}

{_RULE}
FOUNDER'S SPECIFIC CONTEXT:
{_RULE}

{founder_lines}

{_RULE}
Discovered Competitors (batch):
{batch_json}
{_RULE}

For each competitor, determine:

1. relevance: "direct" | "indirect" | "none"
   - direct: targets the same customers with a similar solution
   - indirect: adjacent market or different approach
   - none: not a real competitor
2. threat_level: 1-10 (10 = highest threat), considering funding, market position and features
3. key_features: 3-5 main features
4. positioning: {{
     "target_market": "who they target",
     "price_tier": "budget" | "mid-range" | "premium" | "enterprise",
     "price_details": "actual price range if known, else 'Contact for pricing'",
     "key_strengths": "why customers choose them",
     "company_stage": "well-funded" | "bootstrapped" | "enterprise" | "startup" | "unknown",
     "geographic_focus": "Global, a country or a region"
   }}
5. our_differentiation: 30-60 words on how THIS founder can compete, specific to their context:
{founder_hints or "   - No founder context; base it on the idea itself."}
   Generic statements like "better UX" or "more affordable pricing" are not acceptable.
6. keep: true if this is a real competitor, false if it is a false positive

Return ONLY a JSON array, one object per competitor, with keys:
name, website, relevance, threat_level, key_features, positioning, our_differentiation, keep.
Do not include markdown code blocks, only return the JSON array.
"""


def parse_classification(raw: str, batch_index: int = 0) -> List[AnalyzedCompetitor]:
    """Parse one batch's model output.

    Unparseable output yields ``[]``; elements that fail schema
    validation are dropped individually.
    """
    try:
        items = extract_json_array(raw)
    except LLMResponseError as exc:
        logger.warning("Batch %d: could not parse classification output: %s", batch_index + 1, exc)
        return []

    competitors: List[AnalyzedCompetitor] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            competitors.append(AnalyzedCompetitor.model_validate(item))
        except (ValidationError, TypeError) as exc:
            logger.warning(
                "Batch %d: dropping invalid competitor %r: %s",
                batch_index + 1, item.get("name"), exc,
            )
    return competitors


async def classify_batch(
    context: IdeaContext,
    batch: Sequence[CompetitorCandidate],
    wizard_answers: Optional[Mapping[str, Any]],
    llm,
    *,
    index: int = 0,
    cancel_token: Optional[CancelToken] = None,
) -> BatchOutcome:
    """Classify one batch; never raises except on cancellation."""
    if not batch:
        return BatchOutcome(index=index)

    prompt = build_classification_prompt(context, batch, wizard_answers)
    outcome = await try_call_with_retry(
        lambda: llm.complete(
            prompt, max_tokens=CLASSIFY_MAX_TOKENS, temperature=CLASSIFY_TEMPERATURE,
        ),
        classify_llm_error,
        initial_delay=RetryConfig.HEAVY_CALL_BACKOFF,
        operation_name=f"Competitor Analysis batch {index + 1}",
        cancel_token=cancel_token,
    )
    if not outcome.ok:
        return BatchOutcome(index=index, error=outcome.error)

    return BatchOutcome(index=index, competitors=parse_classification(outcome.value or "", index))


def fold_batch_outcomes(outcomes: Sequence[BatchOutcome]) -> List[AnalyzedCompetitor]:
    """Concatenate successful batches and keep only relevant competitors."""
    kept: List[AnalyzedCompetitor] = []
    for outcome in outcomes:
        if not outcome.ok:
            logger.error("Batch %d failed after retries, skipping: %s", outcome.index + 1, outcome.error)
            continue
        kept.extend(c for c in outcome.competitors if c.is_kept)
    return kept


async def classify_competitors(
    context: IdeaContext,
    candidates: Sequence[CompetitorCandidate],
    wizard_answers: Optional[Mapping[str, Any]],
    llm,
    *,
    cancel_token: Optional[CancelToken] = None,
) -> List[AnalyzedCompetitor]:
    """Classify all candidates in sequential batches of 8.

    Parameters
    ----------
    context : IdeaContext
        Problem / audience / solution shown to the model.
    candidates : sequence of CompetitorCandidate
        De-duplicated discovery output.
    wizard_answers : mapping, optional
        Source of the founder context.
    llm
        Anything with ``async complete(prompt, *, max_tokens, temperature) -> str``.

    Returns
    -------
    list[AnalyzedCompetitor]
        Kept competitors from every batch that succeeded, in batch order.
    """
    if not candidates:
        return []

    batches = chunk_candidates(candidates)
    print(f"🤖 [CLASSIFIER] {len(candidates)} candidates in {len(batches)} batches")

    outcomes: List[BatchOutcome] = []
    for index, batch in enumerate(batches):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("classification")
        outcome = await classify_batch(
            context, batch, wizard_answers, llm, index=index, cancel_token=cancel_token,
        )
        print(f"🤖 [CLASSIFIER] Batch {index + 1}/{len(batches)}: "
              f"{'ok, ' + str(len(outcome.competitors)) + ' records' if outcome.ok else 'FAILED'}")
        outcomes.append(outcome)

    kept = fold_batch_outcomes(outcomes)
    print(f"🤖 [CLASSIFIER] Kept {len(kept)} relevant competitors")
    return kept
