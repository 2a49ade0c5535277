"""Short title generation for ideas submitted without one."""

from __future__ import annotations

import logging
import re
from typing import Optional

from ..exceptions import AnalysisCancelledError
from .retry import CancelToken, call_with_retry, classify_llm_error

logger = logging.getLogger(__name__)

TITLE_MAX_TOKENS = 20
TITLE_TEMPERATURE = 0.3
FALLBACK_TITLE_LENGTH = 50

_QUOTES_RE = re.compile(r"^[\"']|[\"']$")


def fallback_title(idea_text: str) -> str:
    return idea_text[:FALLBACK_TITLE_LENGTH]


async def generate_title(
    idea_text: str,
    llm,
    *,
    cancel_token: Optional[CancelToken] = None,
) -> str:
    """2-6 word title in title case; the first 50 characters of the idea on failure."""
    prompt = (
        f'Create a clean, professional title (2-6 words) for this business idea: "{idea_text}"\n\n'
        "Rules:\n"
        "- Keep it 2-6 words maximum\n"
        "- Use title case\n"
        "- Be specific and descriptive\n"
        '- Avoid generic words like "platform", "app", "tool" unless necessary\n'
        "- Focus on the core value proposition\n\n"
        "Return ONLY the title, no quotes, no explanations."
    )
    try:
        raw = await call_with_retry(
            lambda: llm.complete(prompt, max_tokens=TITLE_MAX_TOKENS, temperature=TITLE_TEMPERATURE),
            classify_llm_error,
            operation_name="Generate Title",
            cancel_token=cancel_token,
        )
    except AnalysisCancelledError:
        raise
    except Exception as exc:
        logger.warning("Title generation failed, using fallback: %s", exc)
        return fallback_title(idea_text)

    title = _QUOTES_RE.sub("", (raw or "").strip()).strip()
    return title or fallback_title(idea_text)
