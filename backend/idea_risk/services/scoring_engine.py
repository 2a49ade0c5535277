"""Deterministic Scoring Engine.

Turns the four category risk scores into the overall risk score, the
risk level and the verdict using fixed weights and bands.  Whatever the
model proposed for these fields is overwritten with the values computed
here.

Rules
-----
- NO API calls
- NO DB writes
- NO LLMs
- NO heuristics beyond the explicit formulas and bands in ``constants.py``
- Pure deterministic math
"""

from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Tuple

from ..constants import (
    CATEGORY_WEIGHTS,
    DEFAULT_CATEGORY_SCORE,
    DEFAULT_TIMELINE,
    RISK_LEVEL_BANDS,
    TIMELINE_OPTIONS,
    VERDICT_BANDS,
)

logger = logging.getLogger(__name__)


def _clamp(value: float, lo: float = 0.0, hi: float = 10.0) -> float:
    """Clamp *value* to [lo, hi]."""
    return max(lo, min(hi, value))


def _category_value(scores: Any, name: str) -> float:
    raw = scores.get(name) if isinstance(scores, Mapping) else getattr(scores, name, None)
    if raw is None or isinstance(raw, bool):
        return DEFAULT_CATEGORY_SCORE
    try:
        return _clamp(float(raw))
    except (TypeError, ValueError):
        return DEFAULT_CATEGORY_SCORE


def calculate_risk_score(category_scores: Any) -> float:
    """Weighted overall risk score, rounded half-up to one decimal.

    Parameters
    ----------
    category_scores : CategoryScores or mapping
        ``competition_level``, ``business_viability``, ``market_timing``,
        ``execution_difficulty``.  Missing or non-numeric categories count
        as 5.0.

    Returns
    -------
    float
        ``0.35*competition + 0.25*viability + 0.20*timing + 0.20*execution``
        on a 0-10 scale.  Summed in ``Decimal`` so 7.55 rounds to 7.6
        regardless of binary float error.
    """
    total = Decimal("0")
    for name, weight in CATEGORY_WEIGHTS.items():
        value = _category_value(category_scores, name)
        total += Decimal(str(value)) * Decimal(str(weight))
    return float(total.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def risk_level_for(overall_score: float) -> str:
    """Low below 4.0, Medium below 7.0, High from 7.0."""
    for lower, level in RISK_LEVEL_BANDS:
        if overall_score >= lower:
            return level
    return RISK_LEVEL_BANDS[-1][1]


def verdict_for(overall_score: float) -> Tuple[str, str]:
    """Return ``(verdict, verdict_label)`` for an overall score.

    Bands are half-open, so every score maps to exactly one band:
    ``[-inf, 5.0)`` proceed, ``[5.0, 7.0)``, ``[7.0, 8.5)`` and
    ``[8.5, inf)`` needs_work with increasingly severe labels.
    """
    for lower, verdict, label in VERDICT_BANDS:
        if overall_score >= lower:
            return verdict, label
    _, verdict, label = VERDICT_BANDS[-1]
    return verdict, label


# ── Model-output repair ─────────────────────────────────────────────────

_TIMELINE_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("mvp", "During MVP development"),
    ("post", "Post-launch"),
    ("after launch", "Post-launch"),
    ("pre-launch", "Before launch"),
    ("before launch", "Before launch"),
    ("before start", "Before starting"),
    ("immediately", "Before starting"),
    ("validat", "During validation"),
)


def normalize_timeline(value: Any) -> Tuple[str, bool]:
    """Map a model-supplied timeline onto the fixed enum.

    Returns ``(timeline, repaired)``.  ``repaired`` is True whenever the
    value was not already an exact enum member; callers log it as a
    data-quality defect.
    """
    text = re.sub(r"\s+", " ", str(value or "")).strip()
    if text in TIMELINE_OPTIONS:
        return text, False

    lowered = text.lower()
    for option in TIMELINE_OPTIONS:
        if lowered == option.lower():
            return option, True
    for keyword, option in _TIMELINE_KEYWORDS:
        if keyword in lowered:
            return option, True
    return DEFAULT_TIMELINE, True


_IMPACT_ANNOTATION_RE = re.compile(
    r"\s*-\s*(Positive|Negative)\s*-\s*|\((Positive|Negative)\)|\[(Positive|Negative)\]",
    re.IGNORECASE,
)


def sanitize_factor(text: Any) -> str:
    """Strip embedded impact annotations ("- Positive -", "(Negative)", "[Positive]")."""
    cleaned = _IMPACT_ANNOTATION_RE.sub(" ", str(text or ""))
    return re.sub(r"\s{2,}", " ", cleaned).strip()


def normalize_impact(value: Any) -> str:
    """Anything mentioning 'neg' is negative; everything else positive."""
    return "negative" if "neg" in str(value or "").lower() else "positive"


def clamp_score_100(value: Any, default: int = 50) -> int:
    """Model's 0-100 idea score, clamped; non-numeric -> *default*."""
    if isinstance(value, bool):
        return default
    try:
        return int(round(_clamp(float(value), 0.0, 100.0)))
    except (TypeError, ValueError):
        return default
