"""Core-Field Synthesizer — problem / audience / solution / monetization.

One model call turns the founder's wizard answers into the four
descriptive fields.  Any failure (network after retries, unparseable
output) yields four empty strings so the run can continue.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from ..exceptions import AnalysisCancelledError
from ..schemas.idea_schema import IdeaContext
from .openai_client import extract_json_object, validate_required_keys
from .retry import CancelToken, call_with_retry, classify_llm_error

logger = logging.getLogger(__name__)

CORE_FIELDS = ["problem", "audience", "solution", "monetization"]
CORE_FIELDS_MAX_TOKENS = 1000
CORE_FIELDS_TEMPERATURE = 0.3

# Used when a successful reply leaves a field out or blank
FIELD_PLACEHOLDERS = {
    "problem": "To be determined through customer discovery",
    "audience": "To be determined through customer discovery",
    "solution": "To be determined through customer discovery",
    "monetization": "To be determined based on target customer feedback",
}


def build_core_fields_prompt(idea_text: str, wizard_answers: Mapping[str, Any]) -> str:
    answers_json = json.dumps(dict(wizard_answers), indent=2, ensure_ascii=False, default=str)
    return f"""
You are analyzing a startup idea based on the founder's detailed answers.

Idea: {idea_text}

Wizard Answers:
{answers_json}

Extract and synthesize the following from the wizard answers:

1. problem: the specific, concrete pain point this solves.
2. audience: whoever the founder described, stated as what IS known.
   If truly undefined, say "To be determined through customer discovery".
3. solution: the proposed solution, including every feature mentioned.
4. monetization: any pricing or revenue hints, phrased constructively,
   e.g. "Subscription-based model (pricing to be validated)".
   If there are no hints, say "To be determined based on target customer feedback".

Rules:
- Be professional and constructive; never criticize the founder.
- Frame unknowns as "to be determined", never as "not decided".
- Never leave a field empty.

Return ONLY a JSON object:
{{"problem": "...", "audience": "...", "solution": "...", "monetization": "..."}}
"""


async def synthesize_core_fields(
    idea_text: str,
    wizard_answers: Mapping[str, Any],
    llm,
    *,
    cancel_token: Optional[CancelToken] = None,
) -> IdeaContext:
    """Return synthesized fields, or an all-empty ``IdeaContext`` on failure."""
    prompt = build_core_fields_prompt(idea_text, wizard_answers)
    try:
        raw = await call_with_retry(
            lambda: llm.complete(
                prompt, max_tokens=CORE_FIELDS_MAX_TOKENS, temperature=CORE_FIELDS_TEMPERATURE,
            ),
            classify_llm_error,
            operation_name="Generate Core Fields from Wizard",
            cancel_token=cancel_token,
        )
        parsed = extract_json_object(raw)
    except AnalysisCancelledError:
        raise
    except Exception as exc:
        logger.error("Core fields generation failed: %s — continuing with empty fields", exc)
        return IdeaContext()

    validate_required_keys(parsed, CORE_FIELDS, context="CORE_FIELDS")
    fields = {}
    for name in CORE_FIELDS:
        value = parsed.get(name)
        text = value.strip() if isinstance(value, str) else ""
        if not text:
            logger.warning("Core field %r missing in reply, using placeholder", name)
            text = FIELD_PLACEHOLDERS[name]
        fields[name] = text
    print("✅ [CORE_FIELDS] Synthesized problem/audience/solution/monetization")
    return IdeaContext(**fields)
