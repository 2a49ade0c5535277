"""Idea persistence — intake, run status, and the single result write per run.

``SqlAlchemyAnalysisStore`` is what the pipeline talks to.  The pipeline
treats it as write-only: it marks a run generating, then hands over one
``AnalysisResult`` (or a failure message) and never reads back.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..constants import (
    PRICE_TIER_CONTEXT,
    PRICE_TIER_TO_PRICING_MODEL,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_GENERATING,
    STATUS_PENDING,
)
from ..exceptions import IdeaNotFoundError
from ..models.competitor import Competitor
from ..models.idea import Idea
from ..schemas.analysis_schema import AnalysisResult
from ..schemas.competitor_schema import AnalyzedCompetitor, CompetitorRecord, Positioning
from ..schemas.idea_schema import (
    DemoBaseline,
    IdeaContext,
    IdeaCreate,
    IdeaInput,
    IdeaRecord,
    WizardQuestion,
)

logger = logging.getLogger(__name__)

_PRICE_NUMBER_RE = re.compile(r"[₹$]?(\d+)")


# ===================================================================== #
#  Helpers                                                                #
# ===================================================================== #

def _coerce_uuid(idea_id: Any) -> uuid.UUID:
    return idea_id if isinstance(idea_id, uuid.UUID) else uuid.UUID(str(idea_id))


def _loads(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Stored JSON column could not be decoded, using default")
        return default


def get_idea(db: Session, idea_id: Any) -> Optional[Idea]:
    try:
        key = _coerce_uuid(idea_id)
    except ValueError:
        return None
    return db.query(Idea).filter(Idea.id == key).first()


def create_idea(db: Session, payload: IdeaCreate) -> Idea:
    """Persist a submitted idea and return the ORM instance (status ``pending``)."""
    idea = Idea(
        idea_text=payload.idea_text,
        title=payload.title,
        problem=payload.problem,
        audience=payload.audience,
        solution=payload.solution,
        monetization=payload.monetization,
        questions_json=json.dumps([q.model_dump() for q in payload.questions]),
        wizard_answers_json=json.dumps(payload.wizard_answers),
        status=STATUS_PENDING,
    )
    db.add(idea)
    db.commit()
    db.refresh(idea)
    return idea


def idea_questions(idea: Idea) -> List[WizardQuestion]:
    return [WizardQuestion.model_validate(q) for q in _loads(idea.questions_json, [])]


def idea_to_record(idea: Idea) -> IdeaRecord:
    return IdeaRecord(
        id=str(idea.id),
        idea_text=idea.idea_text,
        title=idea.title,
        problem=idea.problem,
        audience=idea.audience,
        solution=idea.solution,
        monetization=idea.monetization,
        wizard_answers=_loads(idea.wizard_answers_json, {}),
        questions=idea_questions(idea),
        status=idea.status,
        score=idea.score,
        risk_score=idea.risk_score,
        risk_analysis=_loads(idea.risk_analysis_json, None),
        ai_insights=_loads(idea.ai_insights_json, None),
        error_message=idea.error_message,
        error_occurred_at=idea.error_occurred_at,
        created_at=idea.created_at,
        updated_at=idea.updated_at,
    )


def load_idea_input(db: Session, idea_id: Any) -> IdeaInput:
    """Build the pipeline input for a stored idea.

    A demo baseline is attached only when both ``score`` and
    ``risk_score`` are already set.  Raises IdeaNotFoundError.
    """
    idea = get_idea(db, idea_id)
    if idea is None:
        raise IdeaNotFoundError(f"Idea {idea_id} not found", {"idea_id": str(idea_id)})

    demo = None
    if idea.score and idea.risk_score:
        demo = DemoBaseline(
            score=idea.score,
            risk_score=idea.risk_score,
            risk_analysis=_loads(idea.risk_analysis_json, None),
        )

    return IdeaInput(
        idea_id=str(idea.id),
        idea_text=idea.idea_text,
        title=idea.title,
        context=IdeaContext(
            problem=idea.problem,
            audience=idea.audience,
            solution=idea.solution,
            monetization=idea.monetization,
        ),
        wizard_answers=_loads(idea.wizard_answers_json, {}),
        questions=idea_questions(idea),
        demo=demo,
    )


def list_competitors(db: Session, idea_id: Any) -> List[CompetitorRecord]:
    rows = (
        db.query(Competitor)
        .filter(Competitor.idea_id == _coerce_uuid(idea_id))
        .order_by(Competitor.threat_level.desc(), Competitor.name)
        .all()
    )
    records = []
    for row in rows:
        positioning = _loads(row.positioning_json, None)
        records.append(
            CompetitorRecord(
                id=str(row.id),
                idea_id=str(row.idea_id),
                name=row.name,
                website=row.website,
                description=row.description,
                pricing_model=row.pricing_model,
                pricing_amount=row.pricing_amount,
                key_features=_loads(row.key_features_json, []),
                our_differentiation=row.our_differentiation,
                threat_level=row.threat_level,
                data_source=row.data_source,
                confidence_score=row.confidence_score,
                is_direct_competitor=row.is_direct_competitor,
                positioning=Positioning.model_validate(positioning) if positioning else None,
                created_at=row.created_at,
            )
        )
    return records


# ===================================================================== #
#  Competitor row mapping                                                 #
# ===================================================================== #

def enhance_price_details(price_tier: str, price_details: str) -> str:
    """Keep real price info; otherwise describe the typical range for the tier."""
    details = price_details or ""
    lowered = details.lower()
    if details and "not specified" not in lowered and "to be determined" not in lowered and len(details) > 10:
        return details
    return PRICE_TIER_CONTEXT.get(price_tier, "Contact vendor for pricing details")


def competitor_to_row(idea_id: Any, competitor: AnalyzedCompetitor) -> Competitor:
    """Map a classified competitor onto a ``competitors`` row."""
    description: Optional[str] = None
    positioning_json: Optional[str] = None
    pricing_model: Optional[str] = None
    pricing_amount: Optional[float] = None

    pos = competitor.positioning
    if pos is not None:
        price_details = enhance_price_details(pos.price_tier, pos.price_details)
        positioning: Dict[str, Any] = {
            **pos.model_dump(),
            "price_details": price_details,
        }
        positioning_json = json.dumps(positioning, ensure_ascii=False)

        geographic = f" Geographic focus: {pos.geographic_focus}." if pos.geographic_focus else ""
        stage = f" Company stage: {pos.company_stage}." if pos.company_stage != "unknown" else ""
        description = (
            f"{pos.target_market}.{geographic}{stage} "
            f"{pos.price_tier} pricing: {price_details}. {pos.key_strengths}"
        ).strip()

        pricing_model = PRICE_TIER_TO_PRICING_MODEL.get(pos.price_tier, "subscription")
        match = _PRICE_NUMBER_RE.search(price_details)
        if match:
            pricing_amount = float(match.group(1))
    elif competitor.our_differentiation:
        description = competitor.our_differentiation

    return Competitor(
        idea_id=_coerce_uuid(idea_id),
        name=competitor.name,
        website=competitor.website,
        description=description,
        positioning_json=positioning_json,
        pricing_model=pricing_model,
        pricing_amount=pricing_amount,
        key_features_json=json.dumps(competitor.key_features, ensure_ascii=False),
        our_differentiation=competitor.our_differentiation,
        threat_level=competitor.threat_level,
        data_source="web_search" if competitor.website else "ai_generated",
        confidence_score=8 if competitor.website else 5,
        is_direct_competitor=competitor.relevance == "direct",
    )


# ===================================================================== #
#  Store used by the pipeline                                             #
# ===================================================================== #

class SqlAlchemyAnalysisStore:
    """Run-status and result writes for one analysis run.

    Each method opens its own short-lived session from *session_factory*
    so a long-running pipeline never holds a connection across model calls.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _with_idea(self, idea_id: Any, fn: Callable[[Session, Idea], None]) -> None:
        db = self._session_factory()
        try:
            idea = get_idea(db, idea_id)
            if idea is None:
                raise IdeaNotFoundError(f"Idea {idea_id} not found", {"idea_id": str(idea_id)})
            fn(db, idea)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def mark_generating(self, idea_id: Any) -> None:
        def _apply(db: Session, idea: Idea) -> None:
            idea.status = STATUS_GENERATING
            idea.error_message = None
            idea.error_occurred_at = None

        self._with_idea(idea_id, _apply)

    def save_result(self, idea_id: Any, result: AnalysisResult) -> None:
        """Single upsert: idea columns, replaced competitor rows, status complete."""

        def _apply(db: Session, idea: Idea) -> None:
            idea.problem = result.problem
            idea.audience = result.audience
            idea.solution = result.solution
            idea.monetization = result.monetization
            idea.title = result.title
            idea.score = result.score
            idea.risk_score = result.risk_score
            idea.risk_analysis_json = json.dumps(result.risk_analysis.model_dump(), ensure_ascii=False)
            idea.ai_insights_json = json.dumps(result.ai_insights.model_dump(), ensure_ascii=False)
            idea.status = STATUS_COMPLETE
            idea.error_message = None
            idea.error_occurred_at = None
            idea.analyzed_at = datetime.utcnow()

            db.query(Competitor).filter(Competitor.idea_id == idea.id).delete(
                synchronize_session=False,
            )
            for competitor in result.competitors:
                db.add(competitor_to_row(idea.id, competitor))

        self._with_idea(idea_id, _apply)
        print(f"💾 [STORE] Saved analysis for {idea_id} ({len(result.competitors)} competitors)")

    def mark_failed(self, idea_id: Any, message: str) -> None:
        def _apply(db: Session, idea: Idea) -> None:
            idea.status = STATUS_FAILED
            idea.error_message = message[:2000]
            idea.error_occurred_at = datetime.utcnow()

        self._with_idea(idea_id, _apply)
        logger.error("Analysis for idea %s marked failed: %s", idea_id, message)
