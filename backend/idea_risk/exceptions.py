"""
Custom exceptions for the idea analysis service.

Provides a hierarchy of exceptions so the pipeline can tell recoverable
failures from fatal ones.
"""

from typing import Any, Dict, Optional


class IdeaRiskError(Exception):
    """Base exception for all idea analysis errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(IdeaRiskError):
    """Raised when required configuration or credentials are missing."""
    pass


class IdeaNotFoundError(IdeaRiskError):
    """Raised when the idea record for a run does not exist."""
    pass


class LLMResponseError(IdeaRiskError):
    """Model output could not be parsed into the expected structure."""
    pass


class SearchServiceError(IdeaRiskError):
    """Search API returned an unusable response."""
    pass


class AnalysisCancelledError(IdeaRiskError):
    """Run was cancelled or exceeded its deadline."""
    pass
