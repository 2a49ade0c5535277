"""Company-name extraction from search-result titles.

A Serper hit gives us a page title and a URL, not a company name.  Two
kinds of page are handled differently:

- **Article sites** (news, review and aggregator sites) describe *other*
  companies, so the name is pulled from the title or the URL path.
- **Company sites** usually lead the title with the brand, unless the
  title is a generic page title ("Book Your Vineyard Tour"), in which
  case the name is rebuilt from the domain label.

Pure text processing: no network, no state.  The word lists live in
``constants.py`` and can be overridden per call.
"""

from __future__ import annotations

import math
import re
from typing import Iterable, Optional
from urllib.parse import urlparse

from ..constants import (
    ARTICLE_SITES,
    BUSINESS_SUFFIXES,
    GENERIC_PAGE_WORDS,
    GENERIC_TAIL_PHRASES,
    GENERIC_TITLE_RATIO,
)

# "Top 7 Brex Competitors - Brex"
_TRAILING_NAME_RE = re.compile(r"\s*[-–—]\s*([A-Z][A-Za-z0-9\s&.]+)$", re.IGNORECASE)
# "Stripe: Payment Processing"
_LEADING_NAME_RE = re.compile(r"^([A-Z][A-Za-z0-9\s&.]+?)\s*[:\-–—]")
# Everything before the first title separator
_BEFORE_SEPARATOR_RE = re.compile(r"^([^:–—\-|]+)")
_STARTS_UPPER_RE = re.compile(r"^[A-Z]")

_MAX_TITLE_NAME_LENGTH = 50


def _cap(text: str) -> str:
    """Upper-case the first character only."""
    return text[:1].upper() + text[1:]


def is_generic_page_title(
    text: str,
    generic_words: Iterable[str] = GENERIC_PAGE_WORDS,
    ratio: float = GENERIC_TITLE_RATIO,
) -> bool:
    """True when at least *ratio* of the tokens contain a generic page word."""
    words = re.split(r"\s+", text.lower())
    generic_words = tuple(generic_words)
    generic_count = sum(
        1 for word in words if any(generic in word for generic in generic_words)
    )
    return generic_count >= math.ceil(len(words) * ratio)


def _name_from_article(
    title: str,
    path: str,
    domain: str,
    generic_words: tuple[str, ...],
    tail_phrases: tuple[str, ...],
) -> str:
    match = _TRAILING_NAME_RE.search(title)
    if match:
        extracted = match.group(1).strip()
        if not any(phrase in extracted.lower() for phrase in tail_phrases):
            return extracted

    match = _LEADING_NAME_RE.search(title)
    if match:
        return match.group(1).strip()

    for segment in (s for s in path.split("/") if s):
        words = [w for w in segment.split("-") if len(w) > 2]
        if 0 < len(words) < 4:
            name = " ".join(_cap(w) for w in words)
            if len(name) > 2 and not is_generic_page_title(name, generic_words):
                return name

    return _cap(domain)


def _name_from_domain(domain: str, suffixes: tuple[str, ...]) -> str:
    """``temalpakhfarms`` -> ``Temalpakh Farms``; ``acme`` -> ``Acme``."""
    lowered = domain.lower()
    for suffix in suffixes:
        if lowered.endswith(suffix):
            base = domain[: -len(suffix)]
            tail = domain[-len(suffix):]
            return f"{_cap(base)} {_cap(tail)}"
    return _cap(domain)


def _title_before_separator(title: str) -> Optional[str]:
    match = _BEFORE_SEPARATOR_RE.match(title)
    return match.group(1).strip() if match else None


def extract_company_name(
    title: str,
    url: str,
    *,
    article_sites: Iterable[str] = ARTICLE_SITES,
    generic_words: Iterable[str] = GENERIC_PAGE_WORDS,
    tail_phrases: Iterable[str] = GENERIC_TAIL_PHRASES,
    business_suffixes: Iterable[str] = BUSINESS_SUFFIXES,
) -> str:
    """Best-effort company name for a search result.

    Parameters
    ----------
    title : str
        Search-result page title.
    url : str
        Search-result link.

    Returns
    -------
    str
        The extracted name.  When *url* has no parseable hostname the
        title text before its first separator is returned (or the whole
        title).
    """
    generic_words = tuple(generic_words)

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        hostname = None

    if not hostname:
        return _title_before_separator(title) or title

    domain = re.sub(r"^www\.", "", hostname).split(".")[0]

    if domain.lower() in {site.lower() for site in article_sites}:
        return _name_from_article(
            title, parsed.path, domain, generic_words, tuple(tail_phrases),
        )

    extracted = _title_before_separator(title)
    if (
        extracted
        and len(extracted) < _MAX_TITLE_NAME_LENGTH
        and _STARTS_UPPER_RE.match(extracted)
        and not is_generic_page_title(extracted, generic_words)
    ):
        return extracted

    return _name_from_domain(domain, tuple(business_suffixes))
