"""Runtime configuration — all values read from environment with safe defaults.

Credentials are read lazily so the API can boot (and tests can run)
without keys; a pipeline run that needs a missing key fails fatally
with ``ConfigurationError``.
"""

from __future__ import annotations

import os

from .exceptions import ConfigurationError


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------
def get_openai_key() -> str:
    """Read OPENAI_API_KEY from the environment. Raises ConfigurationError if missing."""
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        print("⚠️  [CONFIG] API key missing (OPENAI_API_KEY)")
        raise ConfigurationError("OPENAI_API_KEY environment variable not set")
    return key


def get_serper_key() -> str:
    """Read SERPER_API_KEY from the environment. Raises ConfigurationError if missing."""
    key = os.getenv("SERPER_API_KEY", "").strip()
    if not key:
        print("⚠️  [CONFIG] API key missing (SERPER_API_KEY)")
        raise ConfigurationError("SERPER_API_KEY environment variable not set")
    return key


def get_openai_model() -> str:
    """Read OPENAI_MODEL from the environment (default: gpt-4.1)."""
    return os.getenv("OPENAI_MODEL", "gpt-4.1").strip()


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./idea_risk.db")


# ---------------------------------------------------------------------------
# Timeouts / retry / run limits
# ---------------------------------------------------------------------------
def get_openai_timeout() -> float:
    return _env_float("OPENAI_REQUEST_TIMEOUT", 120.0)


def get_search_timeout() -> float:
    return _env_float("SEARCH_TIMEOUT", 15.0)


def get_max_retries() -> int:
    return _env_int("RETRY_MAX_RETRIES", 3)


def get_initial_delay() -> float:
    return _env_float("RETRY_INITIAL_DELAY", 1.0)


def get_max_delay() -> float:
    return _env_float("RETRY_MAX_DELAY", 60.0)


def get_analysis_deadline() -> float:
    """Seconds a single analysis run may take before it is cancelled (0 = no limit)."""
    return _env_float("ANALYSIS_DEADLINE_SECONDS", 600.0)
