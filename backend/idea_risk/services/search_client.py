"""Serper web-search client.

Only the ``organic`` block of the response is used downstream.  Errors
are raised, not swallowed: the discovery stage decides (through the
retry layer) whether a failed query degrades to an empty result.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..agents.idea_analysis.http_client import get_client, get_timeout
from ..config import get_serper_key
from ..exceptions import SearchServiceError

logger = logging.getLogger(__name__)

SERPER_SEARCH_URL = "https://google.serper.dev/search"


class SerperSearchClient:
    """POST ``{"q": query}`` to Serper and return the decoded JSON body."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key or get_serper_key()
        self._client = client

    async def search(self, query: str) -> Dict[str, Any]:
        client = self._client or await get_client()
        response = await client.post(
            SERPER_SEARCH_URL,
            headers={
                "X-API-KEY": self.api_key,
                "Content-Type": "application/json",
            },
            json={"q": query},
            timeout=get_timeout("serper"),
        )
        logger.debug("[SERPER] HTTP %s for %r", response.status_code, query)
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict):
            raise SearchServiceError("Serper returned a non-object body", {"query": query})
        return data
