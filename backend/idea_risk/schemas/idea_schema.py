from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

WizardAnswer = Union[str, List[str], int, float]
WizardAnswers = Dict[str, WizardAnswer]
QuestionType = Literal["text", "textarea", "radio", "checkbox", "select", "number"]


class QuestionValidation(BaseModel):
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None


class WizardQuestion(BaseModel):
    """One onboarding question.  ``text`` gives answers context in the prompt."""

    id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    type: QuestionType = "text"
    required: bool = False
    options: Optional[List[str]] = None
    validation: Optional[QuestionValidation] = None


class IdeaContext(BaseModel):
    """The four descriptive fields of an idea.  Immutable for one run."""

    model_config = ConfigDict(frozen=True)

    problem: str = ""
    audience: str = ""
    solution: str = ""
    monetization: str = ""

    @field_validator("problem", "audience", "solution", "monetization", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, (list, tuple)):
            return ", ".join(str(item) for item in v)
        return str(v).strip()


class DemoBaseline(BaseModel):
    """Scores from an earlier quick (demo) analysis, used for comparison."""

    score: float
    risk_score: float
    risk_analysis: Optional[Dict[str, Any]] = None


class IdeaInput(BaseModel):
    """Everything one analysis run needs about an idea."""

    idea_id: str
    idea_text: str
    title: Optional[str] = None
    context: IdeaContext = Field(default_factory=IdeaContext)
    wizard_answers: WizardAnswers = Field(default_factory=dict)
    questions: List[WizardQuestion] = Field(default_factory=list)
    demo: Optional[DemoBaseline] = None


# ── API payloads ────────────────────────────────────────────────────────

class IdeaCreate(BaseModel):
    """Idea intake.  Descriptive fields are optional; the pipeline fills them."""

    idea_text: str = Field(
        ...,
        min_length=10,
        max_length=5000,
        description="Free-text description of the business idea.",
    )
    title: Optional[str] = Field(default=None, max_length=255)
    problem: Optional[str] = None
    audience: Optional[str] = None
    solution: Optional[str] = None
    monetization: Optional[str] = None
    questions: List[WizardQuestion] = Field(
        default_factory=list,
        description="Wizard questions the answers will be validated against.",
    )
    wizard_answers: WizardAnswers = Field(default_factory=dict)

    @field_validator("idea_text")
    @classmethod
    def idea_not_trivial(cls, v: str) -> str:
        stripped = v.strip()
        if len(stripped.split()) < 3:
            raise ValueError("Idea description must be at least 3 words.")
        return stripped


class IdeaResponse(BaseModel):
    """Response returned after successfully submitting an idea."""

    idea_id: UUID
    message: str


class AnalyzeRequest(BaseModel):
    """Optional wizard answers submitted together with the analysis trigger."""

    wizard_answers: Optional[WizardAnswers] = None


class AnalysisStatusResponse(BaseModel):
    idea_id: UUID
    status: str
    message: str


class IdeaRecord(BaseModel):
    """Full stored idea, including run status and any analysis output."""

    id: str
    idea_text: str
    title: Optional[str] = None
    problem: Optional[str] = None
    audience: Optional[str] = None
    solution: Optional[str] = None
    monetization: Optional[str] = None
    wizard_answers: WizardAnswers = Field(default_factory=dict)
    questions: List[WizardQuestion] = Field(default_factory=list)
    status: str
    score: Optional[float] = None
    risk_score: Optional[float] = None
    risk_analysis: Optional[Dict[str, Any]] = None
    ai_insights: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_occurred_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
