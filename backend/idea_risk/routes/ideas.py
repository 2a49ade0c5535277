"""Idea routes — intake, analysis trigger, and result retrieval.

Endpoints:
  POST /ideas/                   — Submit an idea
  GET  /ideas/{idea_id}          — Stored idea with run status
  POST /ideas/{idea_id}/analyze  — Start a risk & competitor analysis run
  GET  /ideas/{idea_id}/analysis — Completed analysis result
  GET  /ideas/{idea_id}/competitors — Stored competitors, highest threat first
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..agents.idea_analysis.agent import analyze_idea
from ..constants import STATUS_COMPLETE, STATUS_GENERATING
from ..database import get_db
from ..models.idea import Idea
from ..schemas.analysis_schema import AIInsights, AnalysisResult, RiskAnalysis
from ..schemas.competitor_schema import AnalyzedCompetitor, CompetitorRecord
from ..schemas.idea_schema import (
    AnalysisStatusResponse,
    AnalyzeRequest,
    IdeaCreate,
    IdeaRecord,
    IdeaResponse,
)
from ..services.idea_service import (
    create_idea,
    get_idea,
    idea_questions,
    idea_to_record,
    list_competitors,
)
from ..services.wizard_context import validate_wizard_answers

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/ideas",
    tags=["Ideas"],
)


def _get_or_404(db: Session, idea_id: str) -> Idea:
    idea = get_idea(db, idea_id)
    if idea is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Idea {idea_id} not found",
        )
    return idea


@router.post(
    "/",
    response_model=IdeaResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a Startup Idea",
    response_description="The submitted idea ID and confirmation message",
)
def submit_idea(
    payload: IdeaCreate,
    db: Session = Depends(get_db),
) -> IdeaResponse:
    """Persist a new idea in ``pending`` status and return its ID."""
    try:
        idea = create_idea(db, payload)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store idea: {exc}",
        ) from exc

    return IdeaResponse(
        idea_id=idea.id,
        message="Idea submitted successfully",
    )


@router.get(
    "/{idea_id}",
    response_model=IdeaRecord,
    summary="Get an Idea",
)
def read_idea(idea_id: str, db: Session = Depends(get_db)) -> IdeaRecord:
    return idea_to_record(_get_or_404(db, idea_id))


@router.post(
    "/{idea_id}/analyze",
    response_model=AnalysisStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start Risk & Competitor Analysis",
    response_description="The idea ID and the new run status",
)
def start_analysis(
    idea_id: str,
    background_tasks: BackgroundTasks,
    payload: Optional[AnalyzeRequest] = None,
    db: Session = Depends(get_db),
) -> AnalysisStatusResponse:
    """Validate wizard answers, mark the idea ``generating`` and schedule the run.

    Returns 409 while a run for the same idea is already generating.
    """
    idea = _get_or_404(db, idea_id)

    if idea.status == STATUS_GENERATING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Analysis already in progress for this idea",
        )

    if payload is not None and payload.wizard_answers is not None:
        errors = validate_wizard_answers(payload.wizard_answers, idea_questions(idea))
        if errors:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"message": "Wizard answers failed validation", "errors": errors},
            )
        idea.wizard_answers_json = json.dumps(payload.wizard_answers)

    idea.status = STATUS_GENERATING
    idea.error_message = None
    idea.error_occurred_at = None
    db.commit()

    background_tasks.add_task(analyze_idea, str(idea.id))
    print(f"📨 [IDEAS] Analysis scheduled for idea {idea.id}")

    return AnalysisStatusResponse(
        idea_id=idea.id,
        status=STATUS_GENERATING,
        message="Analysis started",
    )


@router.get(
    "/{idea_id}/analysis",
    response_model=AnalysisResult,
    summary="Get the Completed Analysis",
)
def read_analysis(idea_id: str, db: Session = Depends(get_db)) -> AnalysisResult:
    """Return the stored analysis; 404 until the run has completed."""
    idea = _get_or_404(db, idea_id)
    if idea.status != STATUS_COMPLETE or not idea.risk_analysis_json or not idea.ai_insights_json:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No completed analysis for idea {idea_id} (status: {idea.status})",
        )

    competitors: List[AnalyzedCompetitor] = []
    for record in list_competitors(db, idea.id):
        competitors.append(
            AnalyzedCompetitor(
                name=record.name,
                website=record.website,
                relevance="direct" if record.is_direct_competitor else "indirect",
                threat_level=record.threat_level,
                key_features=record.key_features,
                positioning=record.positioning,
                our_differentiation=record.our_differentiation,
                keep=True,
            )
        )

    return AnalysisResult(
        problem=idea.problem or "",
        audience=idea.audience or "",
        solution=idea.solution or "",
        monetization=idea.monetization or "",
        title=idea.title or "",
        score=idea.score if idea.score is not None else 50,
        risk_score=idea.risk_score if idea.risk_score is not None else 5.0,
        risk_analysis=RiskAnalysis.model_validate(json.loads(idea.risk_analysis_json)),
        ai_insights=AIInsights.model_validate(json.loads(idea.ai_insights_json)),
        competitors=competitors,
    )


@router.get(
    "/{idea_id}/competitors",
    response_model=List[CompetitorRecord],
    summary="List Stored Competitors",
)
def read_competitors(idea_id: str, db: Session = Depends(get_db)) -> List[CompetitorRecord]:
    idea = _get_or_404(db, idea_id)
    return list_competitors(db, idea.id)
