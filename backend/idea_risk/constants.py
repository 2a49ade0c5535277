"""Centralized constants shared across the analysis pipeline.

This module is the SINGLE SOURCE OF TRUTH for the heuristic word lists
used by company-name extraction, the risk-score weights and bands, and
the enums the model output is validated against.  The lists are plain
data so they can be extended without touching control flow.
"""

from __future__ import annotations

# ── Company-name extraction tables ──────────────────────────────────────
# First label of hostnames whose titles describe *other* companies
# (news outlets, review platforms, aggregators, travel reviews).

ARTICLE_SITES: tuple[str, ...] = (
    "techcrunch",
    "forbes",
    "businessinsider",
    "theverge",
    "wired",
    "reuters",
    "bloomberg",
    "cnbc",
    "venturebeat",
    "mashable",
    "engadget",
    "arstechnica",
    "zdnet",
    "cnet",
    "medium",
    "gartner",
    "capterra",
    "g2",
    "trustradius",
    "softwareadvice",
    "getapp",
    "expertmarket",
    "efficient",
    "superagi",
    "lucid",
    "visitcalifornia",
    "tripadvisor",
    "yelp",
    "producthunt",
)

# Words that mark a page title as describing the page, not the company.
GENERIC_PAGE_WORDS: tuple[str, ...] = (
    "tour",
    "tours",
    "visit",
    "book",
    "booking",
    "reservation",
    "about",
    "contact",
    "services",
    "products",
    "home",
    "welcome",
    "experience",
    "education",
    "learn",
    "center",
    "shop",
    "store",
    "blog",
    "news",
    "events",
    "gallery",
    "testimonials",
    "faq",
)

# Trailing article-title fragments that are never a company name.
GENERIC_TAIL_PHRASES: tuple[str, ...] = (
    "and more",
    "comparison",
    "review",
    "guide",
    "blog",
    "article",
)

# Checked in order; the first suffix the domain label ends with wins.
BUSINESS_SUFFIXES: tuple[str, ...] = (
    "farm",
    "farms",
    "tours",
    "tour",
    "co",
    "inc",
    "llc",
    "corp",
)

# Share of title tokens that must be generic for the title to be rejected.
GENERIC_TITLE_RATIO = 0.5

# ── Competitor classification ───────────────────────────────────────────

BATCH_SIZE = 8

RELEVANCE_LEVELS: tuple[str, ...] = ("direct", "indirect", "none")
PRICE_TIERS: tuple[str, ...] = ("budget", "mid-range", "premium", "enterprise")
COMPANY_STAGES: tuple[str, ...] = (
    "well-funded",
    "bootstrapped",
    "enterprise",
    "startup",
    "unknown",
)

# Wizard keys are matched by substring against these keyword groups.
FOUNDER_CONTEXT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "target_customer": ("target", "customer", "audience"),
    "location": ("location", "geographic", "market"),
    "experience": ("experience", "background", "expertise"),
    "budget": ("budget", "funding", "capital"),
    "commitment": ("commitment", "time", "availability"),
    "technical": ("technical", "tech", "capability", "skill"),
}

# ── Risk scoring ────────────────────────────────────────────────────────
# Weights sum to 1.0.  Higher category score = higher risk.

CATEGORY_WEIGHTS: dict[str, float] = {
    "competition_level": 0.35,
    "business_viability": 0.25,
    "market_timing": 0.20,
    "execution_difficulty": 0.20,
}

DEFAULT_CATEGORY_SCORE = 5.0

# Half-open bands [lower, next lower).  Scores are rounded to one
# decimal first, so 3.9 -> Low and 4.0 -> Medium.
RISK_LEVEL_BANDS: tuple[tuple[float, str], ...] = (
    (7.0, "High"),
    (4.0, "Medium"),
    (float("-inf"), "Low"),
)

VERDICT_BANDS: tuple[tuple[float, str, str], ...] = (
    (8.5, "needs_work", "Very High Risk - Reconsider Approach"),
    (7.0, "needs_work", "High Risk - Major Challenges"),
    (5.0, "needs_work", "Promising - Address Constraints"),
    (float("-inf"), "proceed", "Strong Potential"),
)

TIMELINE_OPTIONS: tuple[str, ...] = (
    "Before starting",
    "During validation",
    "During MVP development",
    "Before launch",
    "Post-launch",
)

DEFAULT_TIMELINE = "During validation"

# ── Competitor persistence ──────────────────────────────────────────────

PRICE_TIER_CONTEXT: dict[str, str] = {
    "budget": "Typically ₹100-500/user/month or freemium",
    "mid-range": "Typically ₹500-1500/user/month",
    "premium": "Typically ₹1500-3000/user/month",
    "enterprise": "Custom pricing - contact for quote",
}

PRICE_TIER_TO_PRICING_MODEL: dict[str, str] = {
    "budget": "freemium",
    "mid-range": "subscription",
    "premium": "subscription",
    "enterprise": "enterprise",
}

# ── Analysis run status ─────────────────────────────────────────────────

STATUS_PENDING = "pending"
STATUS_GENERATING = "generating"
STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"
