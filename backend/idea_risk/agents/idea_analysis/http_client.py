"""
Async HTTP Client Configuration

Provides a shared httpx.AsyncClient with connection pooling, timeout
presets and the retry policy constants used by every external call in
the analysis pipeline.
"""

import httpx
from typing import Optional

from ...config import (
    get_initial_delay,
    get_max_delay,
    get_max_retries,
    get_search_timeout,
)


# Timeout configurations (in seconds)
class Timeouts:
    """Timeout presets for external services."""
    SERPER = get_search_timeout()       # Serper web search
    CONNECT = 5.0


# Retry configuration
class RetryConfig:
    """Retry settings shared by search and model calls."""
    MAX_RETRIES = get_max_retries()
    INITIAL_BACKOFF = get_initial_delay()   # seconds
    MAX_BACKOFF = get_max_delay()           # seconds

    # Classification batches and the risk prompt are heavy; back off slower
    HEAVY_CALL_BACKOFF = 2.0

    # Retryable status codes (529 = provider overloaded)
    RETRYABLE_CODES = {429, 500, 502, 503, 504, 529}


# Shared client instance (lazily initialized)
_client: Optional[httpx.AsyncClient] = None


async def get_client() -> httpx.AsyncClient:
    """Get the shared async HTTP client."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(Timeouts.SERPER, connect=Timeouts.CONNECT),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
            follow_redirects=True,
        )
    return _client


async def close_client():
    """Close the shared client (call on app shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def get_timeout(service: str) -> httpx.Timeout:
    """Get timeout configuration for a service."""
    timeouts = {
        "serper": Timeouts.SERPER,
    }
    seconds = timeouts.get(service.lower(), 10.0)
    return httpx.Timeout(seconds, connect=Timeouts.CONNECT)


def is_retryable_status(status_code: int) -> bool:
    """Check if an HTTP status is worth retrying."""
    return status_code in RetryConfig.RETRYABLE_CODES or status_code >= 500

