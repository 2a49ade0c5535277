"""Competitor domain normalization and de-duplication.

Two search hits for the same company (``https://www.Acme.com/pricing``
and ``http://acme.com``) must collapse into one candidate before they
are sent to the model.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List
from urllib.parse import urlparse

from ..schemas.competitor_schema import CompetitorCandidate

logger = logging.getLogger(__name__)

_PROTOCOL_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)
_WWW_RE = re.compile(r"^www\.", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_domain(url: str) -> str:
    """Return the bare lower-cased hostname of *url* without ``www.``.

    Falls back to plain string stripping when the URL cannot be parsed
    or has no hostname (e.g. ``acme.com/pricing`` without a scheme).
    """
    try:
        hostname = urlparse(url.strip()).hostname
    except ValueError:
        hostname = None

    if hostname:
        return _WWW_RE.sub("", hostname.lower())

    text = _PROTOCOL_RE.sub("", url.strip())
    text = _WWW_RE.sub("", text)
    return re.split(r"[/?#]", text, maxsplit=1)[0].lower()


def dedup_key(candidate: CompetitorCandidate) -> str:
    """Domain when a website is known, else the squashed lower-case name."""
    if candidate.website:
        return normalize_domain(candidate.website)
    return _WHITESPACE_RE.sub("", candidate.name.lower())


def dedupe_candidates(candidates: Iterable[CompetitorCandidate]) -> List[CompetitorCandidate]:
    """Keep the first candidate per dedup key, preserving input order."""
    seen: set[str] = set()
    unique: List[CompetitorCandidate] = []

    for candidate in candidates:
        key = dedup_key(candidate)
        if key in seen:
            logger.info("[DEDUP] Skipping duplicate: %s (%s)", candidate.name, key)
            continue
        seen.add(key)
        unique.append(candidate)

    return unique
