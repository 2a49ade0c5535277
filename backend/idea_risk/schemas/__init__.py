# Schemas package
from .idea_schema import IdeaContext, IdeaCreate, IdeaInput, IdeaResponse, WizardQuestion
from .competitor_schema import AnalyzedCompetitor, CompetitorCandidate, CompetitorRecord
from .analysis_schema import AIInsights, AnalysisResult, RiskAnalysis

__all__ = [
    "IdeaContext",
    "IdeaCreate",
    "IdeaInput",
    "IdeaResponse",
    "WizardQuestion",
    "AnalyzedCompetitor",
    "CompetitorCandidate",
    "CompetitorRecord",
    "AIInsights",
    "AnalysisResult",
    "RiskAnalysis",
]
