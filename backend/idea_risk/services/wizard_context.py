"""Helpers that turn raw wizard answers into prompt context.

Wizard question ids are free-form (``target_customer``,
``startup_budget``, ``geographic_market`` ...), so every lookup here is a
case-insensitive substring match on the key.  The first matching key in
answer order wins.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel

from ..constants import FOUNDER_CONTEXT_KEYWORDS

logger = logging.getLogger(__name__)


def answer_text(value: Any) -> str:
    """Render one answer as text; list answers are comma-joined."""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def _find_key(answers: Mapping[str, Any], predicate: Callable[[str], bool]) -> Optional[str]:
    for key in answers:
        if predicate(key.lower()):
            return key
    return None


def find_answer(answers: Mapping[str, Any], keywords: Iterable[str]) -> Optional[str]:
    """Text of the first answer whose key contains any of *keywords*."""
    keywords = tuple(keywords)
    key = _find_key(answers, lambda k: any(word in k for word in keywords))
    return answer_text(answers[key]) if key is not None else None


def founder_context(answers: Mapping[str, Any]) -> dict[str, str]:
    """Founder facts used to personalise competitor differentiation notes.

    Returns only the groups that were found, keyed by the names in
    ``FOUNDER_CONTEXT_KEYWORDS`` (target_customer, location, ...).
    """
    context: dict[str, str] = {}
    for name, keywords in FOUNDER_CONTEXT_KEYWORDS.items():
        value = find_answer(answers, keywords)
        if value:
            context[name] = value
    return context


def format_wizard_answers(
    answers: Optional[Mapping[str, Any]],
    questions: Optional[Sequence[Mapping[str, str]]] = None,
) -> str:
    """Format answers as ``Q: ...`` / ``A: ...`` blocks for the analysis prompt.

    Question text is looked up by id; unknown ids are shown as-is.
    """
    if not answers:
        return "No wizard answers provided."

    question_map = {q.get("id"): q.get("text") for q in (questions or []) if q.get("id")}

    blocks = []
    for question_id, answer in answers.items():
        question_text = question_map.get(question_id) or question_id
        blocks.append(f"Q: {question_text}\nA: {answer_text(answer)}")
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Key insights
# ---------------------------------------------------------------------------
class KeyInsights(BaseModel):
    """Facts pulled out of the wizard so the model does not conflate them.

    ``startup_budget`` is what the founder has to launch with;
    ``market_spending`` is what customers pay today.
    """

    startup_budget: Optional[int] = None
    market_spending: Optional[str] = None
    technical_capability: Optional[str] = None
    target_market: Optional[str] = None
    existing_solutions: Optional[str] = None
    regulatory_requirements: Optional[str] = None
    team_size: Optional[float] = None


def _is_startup_budget_key(k: str) -> bool:
    return (
        ("startup" in k and "budget" in k)
        or ("available" in k and "budget" in k)
        or ("launch" in k and "budget" in k)
        or ("development" in k and "budget" in k)
        or k == "budget"
    )


def _is_market_spending_key(k: str) -> bool:
    return (
        ("customer" in k and "budget" in k)
        or ("market" in k and "spending" in k)
        or ("customer" in k and "spend" in k)
        or ("current" in k and "market" in k)
    )


def _is_target_market_key(k: str) -> bool:
    return (
        ("target" in k and "market" in k)
        or "geographic" in k
        or ("market" in k and "spending" not in k)
    )


def _contains_any(*words: str) -> Callable[[str], bool]:
    return lambda k: any(word in k for word in words)


def extract_key_insights(answers: Optional[Mapping[str, Any]]) -> KeyInsights:
    """Pull budget, market, technical, regulatory and team facts from *answers*."""
    insights = KeyInsights()
    if not answers:
        return insights

    key = _find_key(answers, _is_startup_budget_key)
    if key is not None:
        value = answers[key]
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            insights.startup_budget = int(value)
        elif isinstance(value, str):
            match = re.search(r"\d+", value)
            if match:
                insights.startup_budget = int(match.group(0))

    text_lookups = (
        ("market_spending", _is_market_spending_key),
        ("technical_capability", _contains_any("technical", "tech", "capability", "skill")),
        ("target_market", _is_target_market_key),
        ("existing_solutions", _contains_any("existing", "competitor", "alternative", "current")),
        ("regulatory_requirements", _contains_any("regulatory", "regulation", "compliance", "certification")),
    )
    for field, predicate in text_lookups:
        key = _find_key(answers, predicate)
        if key is not None:
            setattr(insights, field, answer_text(answers[key]))

    key = _find_key(answers, _contains_any("team", "people", "founder"))
    if key is not None:
        value = answers[key]
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            insights.team_size = value

    return insights


# ---------------------------------------------------------------------------
# Answer validation
# ---------------------------------------------------------------------------
def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def validate_answer(question: Any, value: Any) -> Optional[str]:
    """Check one answer against its question's rules; return the error or None.

    *question* is a ``WizardQuestion``.  A pattern that is not a valid
    regex is skipped.
    """
    if question.required:
        if _is_blank(value):
            return "This field is required"
        if isinstance(value, (list, tuple)) and not value:
            return "Please select at least one option"

    if _is_blank(value):
        return None

    rules = question.validation
    if question.type in ("text", "textarea"):
        text = str(value)
        if rules and rules.min_length and len(text) < rules.min_length:
            return f"Minimum {rules.min_length} characters required"
        if rules and rules.max_length and len(text) > rules.max_length:
            return f"Maximum {rules.max_length} characters allowed"
        if rules and rules.pattern:
            try:
                if not re.search(rules.pattern, text):
                    return "Please check the format and try again"
            except re.error as exc:
                logger.warning("Invalid pattern on question %s: %s", question.id, exc)

    if question.type == "number":
        try:
            number = float(value)
        except (TypeError, ValueError):
            return "Must be a valid number"
        if rules and rules.min is not None and number < rules.min:
            return f"Must be at least {rules.min:g}"
        if rules and rules.max is not None and number > rules.max:
            return f"Must be no more than {rules.max:g}"

    return None


def validate_wizard_answers(answers: Mapping[str, Any], questions: Sequence[Any]) -> dict[str, str]:
    """Validate every question; returns ``{question_id: error}`` for failures."""
    errors: dict[str, str] = {}
    for question in questions:
        error = validate_answer(question, answers.get(question.id))
        if error:
            errors[question.id] = error
    return errors
