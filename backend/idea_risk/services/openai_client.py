"""Centralized OpenAI client and LLM-output parsing helpers.

All pipeline stages talk to the model through ``OpenAIChatClient.complete``.
This ensures:
  - Model, timeout and key are read from env.
  - The SDK's own retries are disabled; ``services.retry`` is the only
    retry layer, so backoff and error classification happen in one place.
  - The raw text is returned; each caller parses it with
    ``extract_json_object`` / ``extract_json_array`` and validates it
    against its own schema.
  - Consistent logging across all stages.
"""

from __future__ import annotations

import json
import re
import time
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from ..config import get_openai_key, get_openai_model, get_openai_timeout
from ..exceptions import LLMResponseError


class OpenAIChatClient:
    """Thin async wrapper over chat completions that returns plain text."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.model = model or get_openai_model()
        self._client = AsyncOpenAI(
            api_key=api_key or get_openai_key(),
            timeout=timeout or get_openai_timeout(),
            max_retries=0,
        )

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Send a single user message and return the model's text reply.

        Raises the SDK's exceptions unchanged so the retry layer can
        classify them.
        """
        t0 = time.time()
        print(f"🧠 [OPENAI] Calling {self.model} (max_tokens={max_tokens}, temperature={temperature})")
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        duration = time.time() - t0

        usage = response.usage
        if usage:
            print(f"🧠 [OPENAI] Tokens used: prompt={usage.prompt_tokens}, completion={usage.completion_tokens} ({duration:.1f}s)")

        content = ""
        if response.choices:
            content = (response.choices[0].message.content or "").strip()
        print(f"🧠 [OPENAI] Raw output length: {len(content)} chars")
        return content

    async def close(self) -> None:
        await self._client.close()


# ---------------------------------------------------------------------------
# JSON extraction: pulls valid JSON out of LLM output
# ---------------------------------------------------------------------------
_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_code_fences(raw: str) -> str:
    """Return the body of the first markdown fence, or the text itself.

    Handles ```json ... ``` and bare ``` ... ``` blocks, plus a leading BOM.
    """
    text = raw.strip().lstrip("\ufeff")
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    # Unterminated fence (truncated output)
    if text.startswith("```"):
        text = text[3:]
        if text.lower().startswith("json"):
            text = text[4:]
    return text.strip()


def _balanced_slice(text: str, opener: str, closer: str) -> str:
    """Slice out the first top-level ``opener ... closer`` span.

    Brackets inside JSON strings are ignored.  Raises ValueError when no
    opener is found or the span never closes.
    """
    start = text.find(opener)
    if start == -1:
        raise ValueError(f"LLM did not return JSON — no '{opener}' found")

    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start: idx + 1]

    raise ValueError(f"LLM JSON is unbalanced — no closing '{closer}'")


def _loads(fragment: str) -> Any:
    # Remove trailing commas before } or ]
    return json.loads(_TRAILING_COMMA_RE.sub(r"\1", fragment))


def extract_json_array(raw: str) -> List[Any]:
    """Parse the first top-level JSON array in *raw*.

    Raises LLMResponseError if no array can be parsed.
    """
    try:
        parsed = _loads(_balanced_slice(strip_code_fences(raw), "[", "]"))
    except ValueError as exc:
        raise LLMResponseError(f"Could not parse JSON array: {exc}", {"raw": raw[:300]}) from exc
    if not isinstance(parsed, list):
        raise LLMResponseError("Parsed JSON is not an array", {"raw": raw[:300]})
    return parsed


def extract_json_object(raw: str) -> Dict[str, Any]:
    """Parse the first top-level JSON object in *raw*.

    Raises LLMResponseError if no object can be parsed.
    """
    try:
        parsed = _loads(_balanced_slice(strip_code_fences(raw), "{", "}"))
    except ValueError as exc:
        raise LLMResponseError(f"Could not parse JSON object: {exc}", {"raw": raw[:300]}) from exc
    if not isinstance(parsed, dict):
        raise LLMResponseError("Parsed JSON is not an object", {"raw": raw[:300]})
    return parsed


def validate_required_keys(
    parsed: dict,
    required_keys: list[str],
    context: str = "OpenAI",
) -> bool:
    """Check that all required keys exist in parsed dict.

    Logs missing keys and returns False if any are missing.
    """
    missing = [k for k in required_keys if k not in parsed]
    if missing:
        print(f"⚠️  [{context}] Missing required keys: {missing}")
        return False
    return True
