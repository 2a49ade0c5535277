"""Pydantic schemas for the risk analysis and recommendation output.

Field-level coercion handles harmless model sloppiness (numbers as
strings, out-of-range severities).  Anything the model gets
structurally wrong fails validation and is handled by the risk engine
as a parse failure.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..constants import DEFAULT_CATEGORY_SCORE
from .competitor_schema import AnalyzedCompetitor

RiskLevel = Literal["Low", "Medium", "High"]
Verdict = Literal["proceed", "needs_work"]
Timeline = Literal[
    "Before starting",
    "During validation",
    "During MVP development",
    "Before launch",
    "Post-launch",
]


def _as_text_list(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [v.strip()] if v.strip() else []
    if not isinstance(v, (list, tuple)):
        return []
    return [str(item).strip() for item in v if str(item).strip()]


class CategoryScores(BaseModel):
    """Risk per category on a 0-10 scale (higher = riskier)."""

    business_viability: float = Field(default=DEFAULT_CATEGORY_SCORE, ge=0.0, le=10.0)
    market_timing: float = Field(default=DEFAULT_CATEGORY_SCORE, ge=0.0, le=10.0)
    competition_level: float = Field(default=DEFAULT_CATEGORY_SCORE, ge=0.0, le=10.0)
    execution_difficulty: float = Field(default=DEFAULT_CATEGORY_SCORE, ge=0.0, le=10.0)

    @field_validator(
        "business_viability", "market_timing", "competition_level", "execution_difficulty",
        mode="before",
    )
    @classmethod
    def _score(cls, v: Any) -> float:
        if isinstance(v, bool):
            return DEFAULT_CATEGORY_SCORE
        try:
            score = float(v)
        except (TypeError, ValueError):
            return DEFAULT_CATEGORY_SCORE
        return max(0.0, min(10.0, score))


class CategoryExplanations(BaseModel):
    business_viability: str = ""
    market_timing: str = ""
    competition_level: str = ""
    execution_difficulty: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)


class TopRisk(BaseModel):
    title: str = Field(..., min_length=1)
    severity: int = Field(default=5, ge=1, le=10)
    category: str = ""
    why_it_matters: str = ""
    mitigation_steps: List[str] = Field(default_factory=list)
    timeline: Timeline = "During validation"

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, v: Any) -> int:
        try:
            level = int(round(float(v)))
        except (TypeError, ValueError):
            return 5
        return max(1, min(10, level))

    @field_validator("mitigation_steps", mode="before")
    @classmethod
    def _steps(cls, v: Any) -> List[str]:
        return _as_text_list(v)


class CategoryChange(BaseModel):
    demo_score: float
    change: float


class DemoComparison(BaseModel):
    """How the full analysis moved relative to an earlier demo analysis."""

    has_demo: bool = True
    demo_score: Optional[float] = None
    demo_risk_score: Optional[float] = None
    score_difference: Optional[float] = None
    risk_difference: Optional[float] = None
    category_changes: Dict[str, CategoryChange] = Field(default_factory=dict)


class RiskAnalysis(BaseModel):
    overall_score: float = Field(..., ge=0.0, le=10.0)
    category_scores: CategoryScores = Field(default_factory=CategoryScores)
    explanations: CategoryExplanations = Field(default_factory=CategoryExplanations)
    risk_level: RiskLevel
    top_risks: List[TopRisk] = Field(default_factory=list)
    demo_comparison: Optional[DemoComparison] = None


class Recommendation(BaseModel):
    verdict: Verdict
    verdict_label: str
    confidence: int = Field(default=50, ge=0, le=100)
    summary: str = ""
    requirements: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v: Any) -> int:
        try:
            value = int(round(float(v)))
        except (TypeError, ValueError):
            return 50
        return max(0, min(100, value))

    @field_validator("requirements", "next_steps", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> List[str]:
        return _as_text_list(v)


class ScoreFactor(BaseModel):
    factor: str = Field(..., min_length=1)
    impact: Literal["positive", "negative"]
    category: str = ""


class AIInsights(BaseModel):
    recommendation: Recommendation
    score_factors: List[ScoreFactor] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """Final aggregate of one run, handed to persistence."""

    problem: str = ""
    audience: str = ""
    solution: str = ""
    monetization: str = ""
    title: str = ""
    score: int = Field(default=50, ge=0, le=100)
    risk_score: float = Field(..., ge=0.0, le=10.0)
    risk_analysis: RiskAnalysis
    ai_insights: AIInsights
    competitors: List[AnalyzedCompetitor] = Field(default_factory=list)
