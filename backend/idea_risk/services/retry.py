"""Resilient Caller — retry with exponential backoff for external calls.

Every search query, classification batch, core-field synthesis, risk
analysis and title generation goes through ``call_with_retry``.  Call
sites differ only in the error classifier and the operation name.

Rules
-----
- Fatal error           -> raise immediately, no sleep
- Retryable error       -> sleep ``min(initial_delay * 2**attempt, max_delay)``
- Retries exhausted     -> raise the last error unchanged
- ``max_retries`` counts retries, so at most ``max_retries + 1`` attempts
- Backoff sleeps honour the run's ``CancelToken``
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import httpx
import openai

from ..agents.idea_analysis.http_client import (
    RetryConfig,
    is_retryable_status,
)
from ..exceptions import AnalysisCancelledError, IdeaRiskError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE = "retryable"
FATAL = "fatal"

ErrorClassifier = Callable[[BaseException], str]


# ===================================================================== #
#  Cancellation                                                           #
# ===================================================================== #

class CancelToken:
    """Run-level cancellation flag with an optional deadline.

    The orchestrator checks it between stages; the retry loop sleeps
    through it so a cancelled run stops waiting on backoff.
    """

    def __init__(self, deadline_seconds: Optional[float] = None):
        self._event = asyncio.Event()
        self._reason = "Analysis cancelled"
        self._deadline: Optional[float] = None
        if deadline_seconds and deadline_seconds > 0:
            self._deadline = time.monotonic() + deadline_seconds

    def cancel(self, reason: str = "Analysis cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, stage: str = "") -> None:
        if self._event.is_set():
            raise AnalysisCancelledError(self._reason, {"stage": stage})
        if self.expired:
            raise AnalysisCancelledError("Analysis deadline exceeded", {"stage": stage})

    async def sleep(self, seconds: float) -> None:
        """Sleep up to *seconds*, waking early (and raising) on cancel or deadline."""
        self.raise_if_cancelled("backoff")
        remaining = self.remaining()
        timeout = seconds if remaining is None else min(seconds, remaining)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        self.raise_if_cancelled("backoff")


# ===================================================================== #
#  Error classifiers                                                      #
# ===================================================================== #

def _classify_status(status_code: int) -> str:
    return RETRYABLE if is_retryable_status(status_code) else FATAL


def _classify_common(exc: BaseException) -> Optional[str]:
    if isinstance(exc, (AnalysisCancelledError, IdeaRiskError)):
        return FATAL
    if isinstance(exc, httpx.HTTPStatusError):
        return _classify_status(exc.response.status_code)
    if isinstance(exc, httpx.TransportError):
        return RETRYABLE
    if isinstance(exc, asyncio.TimeoutError):
        return RETRYABLE
    if "overloaded" in str(exc).lower():
        return RETRYABLE
    return None


def classify_llm_error(exc: BaseException) -> str:
    """Classify a language-model failure as retryable or fatal.

    Retryable: 429, 5xx (incl. 529 overloaded), connection errors,
    timeouts.  Everything else (auth, bad request, parse errors,
    missing configuration) is fatal.
    """
    if isinstance(exc, openai.APIConnectionError):
        return RETRYABLE
    if isinstance(exc, openai.APIStatusError):
        return _classify_status(exc.status_code)
    return _classify_common(exc) or FATAL


def classify_search_error(exc: BaseException) -> str:
    """Classify a search-service failure as retryable or fatal."""
    return _classify_common(exc) or FATAL


# ===================================================================== #
#  Retry loop                                                             #
# ===================================================================== #

@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried call: exactly one of ``value`` / ``error`` is meaningful."""

    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


async def try_call_with_retry(
    operation: Callable[[], Awaitable[T]],
    classify: ErrorClassifier = classify_llm_error,
    *,
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    operation_name: str = "operation",
    cancel_token: Optional[CancelToken] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> RetryOutcome[T]:
    """Run *operation* with retries and return a ``RetryOutcome`` instead of raising.

    Cancellation is never folded into the outcome; ``AnalysisCancelledError``
    always propagates.
    """
    if max_retries is None:
        max_retries = RetryConfig.MAX_RETRIES
    if initial_delay is None:
        initial_delay = RetryConfig.INITIAL_BACKOFF
    if max_delay is None:
        max_delay = RetryConfig.MAX_BACKOFF
    if sleep is None:
        sleep = cancel_token.sleep if cancel_token is not None else asyncio.sleep

    total = max_retries + 1
    for attempt in range(total):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(operation_name)
        try:
            logger.debug("[RETRY] %s - Attempt %d/%d", operation_name, attempt + 1, total)
            value = await operation()
            return RetryOutcome(value=value, attempts=attempt + 1)
        except AnalysisCancelledError:
            raise
        except Exception as exc:
            kind = classify(exc)
            if kind == FATAL:
                logger.error("[RETRY] %s - fatal error, not retrying: %s", operation_name, exc)
                return RetryOutcome(error=exc, attempts=attempt + 1)

            if attempt >= max_retries:
                logger.error(
                    "[RETRY] %s - all %d attempts failed: %s", operation_name, total, exc,
                )
                return RetryOutcome(error=exc, attempts=attempt + 1)

            delay = min(initial_delay * (2 ** attempt), max_delay)
            logger.warning(
                "[RETRY] %s - attempt %d/%d failed (%s), retrying in %.1fs",
                operation_name, attempt + 1, total, exc, delay,
            )
            print(f"🔄 [RETRY] {operation_name} attempt {attempt + 1}/{total} failed, waiting {delay:.1f}s")
            await sleep(delay)

    # range() always returns above; kept for type checkers
    raise RuntimeError(f"{operation_name}: retry loop exited without result")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    classify: ErrorClassifier = classify_llm_error,
    *,
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    operation_name: str = "operation",
    cancel_token: Optional[CancelToken] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> T:
    """Run *operation* with retries; return its value or raise the last error.

    Parameters
    ----------
    operation : callable
        Zero-argument coroutine factory; called once per attempt.
    classify : callable
        Maps an exception to ``"retryable"`` or ``"fatal"``.
    max_retries : int, optional
        Retries after the first attempt (default from ``RetryConfig``).
    initial_delay, max_delay : float, optional
        Backoff bounds in seconds.
    operation_name : str
        Used for logging only.
    cancel_token : CancelToken, optional
        Aborts between attempts and during backoff.

    Returns
    -------
    T
        Whatever the operation returned on its first successful attempt.
    """
    outcome = await try_call_with_retry(
        operation,
        classify,
        max_retries=max_retries,
        initial_delay=initial_delay,
        max_delay=max_delay,
        operation_name=operation_name,
        cancel_token=cancel_token,
        sleep=sleep,
    )
    if outcome.error is not None:
        raise outcome.error
    return outcome.value  # type: ignore[return-value]
