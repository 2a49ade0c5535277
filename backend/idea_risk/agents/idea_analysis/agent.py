"""Idea Analysis Agent — sequences one risk & competitor analysis run.

Entry points:
  run_idea_analysis(idea, llm=..., search=..., store=...) -> AnalysisResult
  analyze_idea(idea_id)  — background task used by the HTTP layer

Flow:
  1. Mark the run generating
  2. Synthesize core fields (only when wizard answers exist; always overwrites)
  3. Discover competitors (concurrent Serper queries)
  4. Classify competitors (sequential batches of 8)
  5. Risk & recommendation analysis (competitors included in the prompt)
  6. Generate a title if the idea has none
  7. Hand the assembled result to the store

Steps 3-4 degrade to "no competitors found" on failure.  Anything else
that escapes a stage marks the run failed and is re-raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

from sqlalchemy.orm import Session

from ...config import get_analysis_deadline
from ...database import SessionLocal
from ...exceptions import AnalysisCancelledError, ConfigurationError, IdeaNotFoundError
from ...schemas.analysis_schema import AnalysisResult
from ...schemas.idea_schema import IdeaInput
from ...services.competitor_classifier import classify_competitors
from ...services.competitor_discovery import discover_competitors
from ...services.core_fields import synthesize_core_fields
from ...services.idea_service import SqlAlchemyAnalysisStore, load_idea_input
from ...services.openai_client import OpenAIChatClient
from ...services.retry import CancelToken
from ...services.risk_engine import run_risk_analysis
from ...services.search_client import SerperSearchClient
from ...services.title_generator import generate_title
from .timing import StepTimer

logger = logging.getLogger(__name__)


class AnalysisStore(Protocol):
    """Write-only persistence used by one run."""

    def mark_generating(self, idea_id: Any) -> None: ...

    def save_result(self, idea_id: Any, result: AnalysisResult) -> None: ...

    def mark_failed(self, idea_id: Any, message: str) -> None: ...


def _check(cancel_token: Optional[CancelToken], stage: str) -> None:
    if cancel_token is not None:
        cancel_token.raise_if_cancelled(stage)


def _failure_message(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


async def run_idea_analysis(
    idea: IdeaInput,
    *,
    llm,
    search,
    store: AnalysisStore,
    cancel_token: Optional[CancelToken] = None,
) -> AnalysisResult:
    """Run the full pipeline for one idea and persist the result.

    Parameters
    ----------
    idea : IdeaInput
        Idea text, current core fields, wizard answers/questions and
        optional demo baseline.
    llm
        Anything with ``async complete(prompt, *, max_tokens, temperature) -> str``.
    search
        Anything with ``async search(query) -> dict``.
    store : AnalysisStore
        Receives the status changes and the final result.
    cancel_token : CancelToken, optional
        Checked between stages and during retry backoff.

    Returns
    -------
    AnalysisResult
        The record handed to ``store.save_result``.
    """
    idea_id = idea.idea_id
    timer = StepTimer(f"analysis:{idea_id}")
    print(f"🚀 [PIPELINE] START idea={idea_id} wizard_answers={len(idea.wizard_answers)}")

    try:
        store.mark_generating(idea_id)

        context = idea.context
        if idea.wizard_answers:
            _check(cancel_token, "core_fields")
            async with timer.step("core_fields"):
                context = await synthesize_core_fields(
                    idea.idea_text, idea.wizard_answers, llm, cancel_token=cancel_token,
                )
        else:
            print("⏭️  [PIPELINE] No wizard answers, keeping supplied core fields")

        competitors = []
        try:
            _check(cancel_token, "discovery")
            async with timer.step("discovery"):
                candidates = await discover_competitors(
                    idea.idea_text,
                    context.solution or idea.idea_text,
                    idea.wizard_answers,
                    search,
                    cancel_token=cancel_token,
                )
            if candidates:
                _check(cancel_token, "classification")
                async with timer.step("classification"):
                    competitors = await classify_competitors(
                        context, candidates, idea.wizard_answers, llm, cancel_token=cancel_token,
                    )
        except (AnalysisCancelledError, asyncio.CancelledError):
            raise
        except Exception as exc:
            logger.error("Competitor analysis failed, continuing without competitors: %s", exc)
            competitors = []

        _check(cancel_token, "risk_analysis")
        async with timer.step("risk_analysis"):
            risk = await run_risk_analysis(
                idea.idea_text,
                context,
                idea.wizard_answers,
                idea.questions,
                idea.demo,
                competitors,
                llm,
                cancel_token=cancel_token,
            )
        if risk.degraded:
            print("⚠️  [PIPELINE] Risk analysis degraded to the default record")

        title = idea.title
        if not title:
            _check(cancel_token, "title")
            async with timer.step("title"):
                title = await generate_title(idea.idea_text, llm, cancel_token=cancel_token)

        result = AnalysisResult(
            problem=context.problem,
            audience=context.audience,
            solution=context.solution,
            monetization=context.monetization,
            title=title,
            score=risk.score,
            risk_score=risk.risk_score,
            risk_analysis=risk.risk_analysis,
            ai_insights=risk.ai_insights,
            competitors=competitors,
        )

        _check(cancel_token, "persist")
        store.save_result(idea_id, result)
    except Exception as exc:
        message = _failure_message(exc)
        logger.exception("Analysis failed for idea %s", idea_id)
        store.mark_failed(idea_id, message)
        raise

    timer.summary()
    print(f"✅ [PIPELINE] COMPLETE idea={idea_id} risk_score={result.risk_score} "
          f"competitors={len(result.competitors)}")
    return result


async def analyze_idea(
    idea_id: Any,
    session_factory: Callable[[], Session] = SessionLocal,
) -> Optional[AnalysisResult]:
    """Background entry point: load the idea, build clients, run with a deadline.

    Raises IdeaNotFoundError when the row does not exist.  Any other
    failure before the pipeline starts (unreadable stored idea, missing
    credentials) marks the run failed before re-raising.
    """
    store = SqlAlchemyAnalysisStore(session_factory)
    try:
        db = session_factory()
        try:
            idea = load_idea_input(db, idea_id)
        finally:
            db.close()
    except IdeaNotFoundError:
        raise
    except Exception as exc:
        message = _failure_message(exc)
        logger.exception("Could not load idea %s for analysis", idea_id)
        store.mark_failed(idea_id, message)
        raise

    try:
        search = SerperSearchClient()
        llm = OpenAIChatClient()
    except ConfigurationError as exc:
        store.mark_failed(idea.idea_id, exc.message)
        raise

    cancel_token = CancelToken(get_analysis_deadline())
    try:
        return await run_idea_analysis(
            idea, llm=llm, search=search, store=store, cancel_token=cancel_token,
        )
    finally:
        await llm.close()
