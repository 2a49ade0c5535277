"""Competitor schemas: raw search candidates and model-classified competitors.

Model output is untrusted.  ``AnalyzedCompetitor`` coerces what it can
(case, ranges, scalar-vs-list) and rejects what it cannot; rejected
elements are dropped by the classifier, never guessed at.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..constants import COMPANY_STAGES, PRICE_TIERS, RELEVANCE_LEVELS

Relevance = Literal["direct", "indirect", "none"]
PriceTier = Literal["budget", "mid-range", "premium", "enterprise"]
CompanyStage = Literal["well-funded", "bootstrapped", "enterprise", "startup", "unknown"]


class CompetitorCandidate(BaseModel):
    """Unscored search hit.  Lives only between discovery and classification."""

    name: str = Field(..., min_length=1, description="Extracted company name")
    website: Optional[str] = Field(default=None, description="Result link")
    description: Optional[str] = Field(default=None, description="Search snippet")
    source: str = Field(default="serper_search", description="Which search produced the hit")


class Positioning(BaseModel):
    """Market positioning of a competitor, as judged by the model."""

    target_market: str = ""
    price_tier: PriceTier = "mid-range"
    price_details: str = ""
    key_strengths: str = ""
    company_stage: CompanyStage = "unknown"
    geographic_focus: str = ""

    @field_validator(
        "target_market", "price_details", "key_strengths", "geographic_focus",
        mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, list):
            return ", ".join(str(item) for item in v)
        return str(v).strip()

    @field_validator("price_tier", mode="before")
    @classmethod
    def _price_tier(cls, v: Any) -> str:
        tier = str(v or "").strip().lower().replace(" ", "-").replace("_", "-")
        if tier in ("midrange", "mid"):
            tier = "mid-range"
        return tier if tier in PRICE_TIERS else "mid-range"

    @field_validator("company_stage", mode="before")
    @classmethod
    def _company_stage(cls, v: Any) -> str:
        stage = str(v or "").strip().lower().replace(" ", "-")
        return stage if stage in COMPANY_STAGES else "unknown"


class AnalyzedCompetitor(BaseModel):
    """Competitor after classification.  Only ``keep`` + relevant ones are persisted."""

    name: str = Field(..., min_length=1)
    website: Optional[str] = None
    relevance: Relevance = Field(..., description="direct | indirect | none")
    threat_level: int = Field(default=5, ge=1, le=10, description="Competitive danger 1-10")
    key_features: List[str] = Field(default_factory=list)
    positioning: Optional[Positioning] = None
    our_differentiation: Optional[str] = Field(
        default=None, description="How the founder can win against this competitor",
    )
    keep: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v: Any) -> str:
        return str(v or "").strip()

    @field_validator("website", "our_differentiation", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("relevance", mode="before")
    @classmethod
    def _relevance(cls, v: Any) -> str:
        relevance = str(v or "").strip().lower()
        if relevance not in RELEVANCE_LEVELS:
            raise ValueError(f"unknown relevance '{v}'")
        return relevance

    @field_validator("threat_level", mode="before")
    @classmethod
    def _threat_level(cls, v: Any) -> int:
        try:
            level = int(round(float(v)))
        except (TypeError, ValueError):
            return 5
        return max(1, min(10, level))

    @field_validator("key_features", mode="before")
    @classmethod
    def _key_features(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v.strip()] if v.strip() else []
        if not isinstance(v, (list, tuple)):
            return []
        return [str(item).strip() for item in v if str(item).strip()]

    @field_validator("keep", mode="before")
    @classmethod
    def _keep(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1")
        return bool(v)

    @property
    def is_kept(self) -> bool:
        return self.keep and self.relevance != "none"


class CompetitorRecord(BaseModel):
    """Stored competitor row, as returned by ``GET /ideas/{id}/competitors``."""

    id: str
    idea_id: str
    name: str
    website: Optional[str] = None
    description: Optional[str] = None
    pricing_model: Optional[str] = None
    pricing_amount: Optional[float] = None
    key_features: List[str] = Field(default_factory=list)
    our_differentiation: Optional[str] = None
    threat_level: int
    data_source: Literal["web_search", "ai_generated"]
    confidence_score: int
    is_direct_competitor: bool
    positioning: Optional[Positioning] = None
    created_at: datetime
