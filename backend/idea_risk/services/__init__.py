from .idea_service import SqlAlchemyAnalysisStore, create_idea, load_idea_input
from .retry import CancelToken, call_with_retry
from .scoring_engine import calculate_risk_score, risk_level_for, verdict_for

__all__ = [
    "SqlAlchemyAnalysisStore",
    "create_idea",
    "load_idea_input",
    "CancelToken",
    "call_with_retry",
    "calculate_risk_score",
    "risk_level_for",
    "verdict_for",
]
