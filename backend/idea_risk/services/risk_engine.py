"""Risk & Recommendation Engine.

Builds the analysis prompt (idea context, wizard Q&A, key insights, demo
baseline, discovered competitors), makes one retried model call and
turns the reply into a validated ``RiskAnalysis`` + ``AIInsights``.

Deterministic overrides (never taken from the model)
----------------------------------------------------
- ``overall_score`` / ``risk_score``  -> ``scoring_engine.calculate_risk_score``
- ``risk_level``                      -> ``scoring_engine.risk_level_for``
- ``verdict`` / ``verdict_label``     -> ``scoring_engine.verdict_for``
- ``top_risks[].timeline``            -> repaired onto the fixed enum
- ``score_factors[].factor``          -> impact annotations stripped
- ``demo_comparison``                 -> differences computed from the demo baseline

Failure handling
----------------
- Call fails with a retryable error after all retries -> safe default record
- Call fails with a fatal error                       -> re-raised
- Reply cannot be parsed / has no ``risk_analysis``   -> safe default record
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ValidationError

from ..agents.idea_analysis.http_client import RetryConfig
from ..constants import CATEGORY_WEIGHTS, DEFAULT_CATEGORY_SCORE
from ..exceptions import LLMResponseError
from ..schemas.analysis_schema import (
    AIInsights,
    CategoryChange,
    CategoryExplanations,
    CategoryScores,
    DemoComparison,
    Recommendation,
    RiskAnalysis,
    ScoreFactor,
    TopRisk,
)
from ..schemas.competitor_schema import AnalyzedCompetitor
from ..schemas.idea_schema import DemoBaseline, IdeaContext, WizardQuestion
from .openai_client import extract_json_object
from .retry import FATAL, CancelToken, classify_llm_error, try_call_with_retry
from .scoring_engine import (
    calculate_risk_score,
    clamp_score_100,
    normalize_impact,
    normalize_timeline,
    risk_level_for,
    sanitize_factor,
    verdict_for,
)
from .wizard_context import KeyInsights, extract_key_insights, format_wizard_answers

logger = logging.getLogger(__name__)

RISK_MAX_TOKENS = 8000
RISK_TEMPERATURE = 0.5
MAX_TOP_RISKS = 3

PENDING_EXPLANATION = "Analysis pending"
PENDING_LABEL = "Analysis Pending"
PENDING_SUMMARY = "Analysis in progress"

_RULE = "━" * 80


class RiskEngineResult(BaseModel):
    risk_analysis: RiskAnalysis
    ai_insights: AIInsights
    score: int
    risk_score: float
    degraded: bool = False


# ===================================================================== #
#  Prompt                                                                 #
# ===================================================================== #

def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _threat_tag(level: int) -> str:
    if level >= 8:
        return "Critical"
    if level >= 5:
        return "High"
    return "Minor"


def format_key_insights(insights: KeyInsights) -> str:
    lines = []
    if insights.startup_budget is not None:
        lines.append(f"- Startup Budget (what the founder has to launch): ${insights.startup_budget:,}")
    if insights.market_spending:
        lines.append(f"- Market Spending Intelligence (what customers pay today): {insights.market_spending}")
    if insights.technical_capability:
        lines.append(f"- Technical Capability: {insights.technical_capability}")
    if insights.target_market:
        lines.append(f"- Target Market: {insights.target_market}")
    if insights.existing_solutions:
        lines.append(f"- Existing Solutions in Market: {_truncate(insights.existing_solutions, 200)}")
    if insights.regulatory_requirements:
        lines.append(f"- Regulatory Requirements: {_truncate(insights.regulatory_requirements, 200)}")
    if insights.team_size is not None:
        lines.append(f"- Team Size: {insights.team_size:g}")
    return "\n".join(lines) or "- None extracted"


def format_competitors(competitors: Sequence[AnalyzedCompetitor]) -> str:
    blocks = []
    for idx, comp in enumerate(competitors, start=1):
        lines = [f"{idx}. {comp.name}" + (f" ({comp.website})" if comp.website else "")]
        lines.append(f"   - Relevance: {comp.relevance}")
        lines.append(f"   - Threat Level: {comp.threat_level}/10 ({_threat_tag(comp.threat_level)})")
        if comp.positioning:
            lines.append(f"   - Target Market: {comp.positioning.target_market}")
            lines.append(f"   - Price Tier: {comp.positioning.price_tier}")
        if comp.key_features:
            more = "..." if len(comp.key_features) > 3 else ""
            lines.append(f"   - Key Features: {', '.join(comp.key_features[:3])}{more}")
        if comp.our_differentiation:
            lines.append(f"   - Our Differentiation: {_truncate(comp.our_differentiation, 150)}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_analysis_prompt(
    idea_text: str,
    context: IdeaContext,
    wizard_answers: Optional[Mapping[str, Any]],
    questions: Optional[Sequence[WizardQuestion]],
    demo: Optional[DemoBaseline],
    competitors: Sequence[AnalyzedCompetitor],
    insights: Optional[KeyInsights] = None,
) -> str:
    """Assemble the single risk/recommendation prompt."""
    insights = insights or extract_key_insights(wizard_answers)
    formatted_answers = format_wizard_answers(
        wizard_answers, [q.model_dump() for q in (questions or [])],
    )
    budget_ref = f"${insights.startup_budget:,}" if insights.startup_budget is not None else "unknown"

    sections = [
        "You are a senior business analyst with 15+ years of experience evaluating startups.",
        f"{_RULE}\nBUSINESS CONTEXT:\n{_RULE}\n"
        f"Idea: {idea_text}\n"
        f"Problem: {context.problem}\n"
        f"Audience: {context.audience}\n"
        f"Solution: {context.solution}\n"
        f"Monetization: {context.monetization}",
        f"{_RULE}\nFOUNDER'S DETAILED ANSWERS (use these to personalize the analysis):\n{_RULE}\n"
        f"{formatted_answers}\n\nKEY INSIGHTS EXTRACTED:\n{format_key_insights(insights)}",
        "DO NOT CONFUSE STARTUP BUDGET WITH MARKET SPENDING.\n"
        "1. STARTUP BUDGET is the founder's own money to build and launch. Use it for all\n"
        "   execution and viability scoring.\n"
        "2. MARKET SPENDING is what customers pay today for similar solutions. Use it only as\n"
        "   competitive and willingness-to-pay context; it is not the founder's pricing.\n"
        f"Every budget mention in your analysis must use the startup budget ({budget_ref}).",
    ]

    if demo is not None:
        sections.append(
            f"{_RULE}\nDEMO COMPARISON:\n{_RULE}\n"
            f"Demo Score: {demo.score}\nDemo Risk Score: {demo.risk_score}\n"
            "Show how the founder's specific context changed the assessment."
        )

    if competitors:
        sections.append(
            f"{_RULE}\nCOMPETITORS DISCOVERED ({len(competitors)}):\n{_RULE}\n"
            f"{format_competitors(competitors)}\n\n"
            "Use this data to rate competition_level, name real competitors in top_risks "
            "and ground differentiation advice."
        )

    sections.append(
        "Provide a complete business analysis.\n\n"
        "1. RISK ANALYSIS: rate each category 0-10 where HIGHER = RISKIER and use the full scale:\n"
        "   business_viability, market_timing, competition_level, execution_difficulty.\n"
        "   For execution_difficulty consider the lean validation path and compensating\n"
        "   factors (skills, time, connections), not only the full build cost.\n"
        "   Give a 20-30 word explanation per category that justifies its score.\n"
        "   Top 3 risks: title, severity (1-10), category, why_it_matters, 2-4 mitigation_steps,\n"
        "   and timeline, which MUST be exactly one of: \"Before starting\", \"During validation\",\n"
        "   \"During MVP development\", \"Before launch\", \"Post-launch\".\n"
        "2. AI INSIGHTS: recommendation (verdict, verdict_label, confidence 0-100, summary,\n"
        "   requirements, next_steps) and score_factors. Each factor is a plain statement;\n"
        "   do not embed \"- Positive -\" or \"(Negative)\" in the text, impact is a separate\n"
        "   field (\"positive\" | \"negative\").\n"
        "3. score: overall idea score 0-100 (lower risk = higher score).\n\n"
        "Return ONLY a JSON object:\n"
        "{\n"
        '  "risk_analysis": {\n'
        '    "overall_score": 0,\n'
        '    "category_scores": {"business_viability": 0, "market_timing": 0, '
        '"competition_level": 0, "execution_difficulty": 0},\n'
        '    "explanations": {"business_viability": "", "market_timing": "", '
        '"competition_level": "", "execution_difficulty": ""},\n'
        '    "risk_level": "Low | Medium | High",\n'
        '    "top_risks": [{"title": "", "severity": 0, "category": "", "why_it_matters": "", '
        '"mitigation_steps": [], "timeline": "During validation"}]\n'
        "  },\n"
        '  "ai_insights": {\n'
        '    "recommendation": {"verdict": "proceed | needs_work", "verdict_label": "", '
        '"confidence": 0, "summary": "", "requirements": [], "next_steps": []},\n'
        '    "score_factors": [{"factor": "", "impact": "positive | negative", "category": ""}]\n'
        "  },\n"
        '  "score": 0\n'
        "}\n"
        "Do not include markdown code blocks."
    )
    return "\n\n".join(sections)


# ===================================================================== #
#  Post-processing                                                        #
# ===================================================================== #

def check_budget_confusion(parsed: Mapping[str, Any], insights: KeyInsights) -> List[int]:
    """Return market-spending amounts the model mistook for the startup budget.

    Flags an amount when it is below 5000, the startup budget is at least
    5000, and the explanations or insights mention "$<amount> budget".
    """
    risk_analysis = parsed.get("risk_analysis")
    if (
        insights.startup_budget is None
        or not insights.market_spending
        or not isinstance(risk_analysis, dict)
        or not risk_analysis.get("explanations")
    ):
        return []

    all_text = json.dumps(risk_analysis.get("explanations")) + json.dumps(parsed.get("ai_insights"))
    flagged = []
    for raw_amount in re.findall(r"\$?(\d+)", insights.market_spending):
        amount = int(raw_amount)
        if amount < 5000 and insights.startup_budget >= 5000 and f"${amount} budget" in all_text:
            flagged.append(amount)
            logger.warning(
                "BUDGET CONFUSION: model may have used market spending ($%d) "
                "instead of startup budget ($%d); market spending: %s",
                amount, insights.startup_budget, insights.market_spending,
            )
    return flagged


def _top_risks(raw: Any) -> List[TopRisk]:
    risks: List[TopRisk] = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        timeline, repaired = normalize_timeline(item.get("timeline"))
        if repaired:
            logger.warning(
                "Data quality: top risk %r had timeline %r, using %r",
                item.get("title"), item.get("timeline"), timeline,
            )
        try:
            risks.append(TopRisk.model_validate({**item, "timeline": timeline}))
        except (ValidationError, TypeError) as exc:
            logger.warning("Dropping invalid top risk %r: %s", item.get("title"), exc)
    return risks[:MAX_TOP_RISKS]


def _score_factors(raw: Any) -> List[ScoreFactor]:
    factors: List[ScoreFactor] = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        text = sanitize_factor(item.get("factor"))
        if not text:
            continue
        factors.append(
            ScoreFactor(
                factor=text,
                impact=normalize_impact(item.get("impact")),
                category=str(item.get("category") or ""),
            )
        )
    return factors


def build_demo_comparison(
    demo: DemoBaseline,
    category_scores: CategoryScores,
    overall_score: float,
    score: int,
) -> DemoComparison:
    """Differences between this analysis and the demo baseline, rounded to 0.1."""
    changes: Dict[str, CategoryChange] = {}
    demo_risk = demo.risk_analysis if isinstance(demo.risk_analysis, dict) else {}
    demo_categories = demo_risk.get("category_scores")
    if isinstance(demo_categories, dict):
        for name in CATEGORY_WEIGHTS:
            value = demo_categories.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                changes[name] = CategoryChange(
                    demo_score=float(value),
                    change=round(getattr(category_scores, name) - float(value), 1),
                )

    return DemoComparison(
        has_demo=True,
        demo_score=demo.score,
        demo_risk_score=demo.risk_score,
        score_difference=round(score - demo.score, 1),
        risk_difference=round(overall_score - demo.risk_score, 1),
        category_changes=changes,
    )


def default_risk_result(demo: Optional[DemoBaseline] = None) -> RiskEngineResult:
    """Safe record used when the analysis cannot be produced."""
    category_scores = CategoryScores()
    overall = calculate_risk_score(category_scores)
    risk_analysis = RiskAnalysis(
        overall_score=overall,
        category_scores=category_scores,
        explanations=CategoryExplanations(
            business_viability=PENDING_EXPLANATION,
            market_timing=PENDING_EXPLANATION,
            competition_level=PENDING_EXPLANATION,
            execution_difficulty=PENDING_EXPLANATION,
        ),
        risk_level="Medium",
        top_risks=[],
    )
    if demo is not None:
        risk_analysis.demo_comparison = build_demo_comparison(demo, category_scores, overall, 50)

    insights = AIInsights(
        recommendation=Recommendation(
            verdict="needs_work",
            verdict_label=PENDING_LABEL,
            confidence=50,
            summary=PENDING_SUMMARY,
        ),
        score_factors=[],
    )
    return RiskEngineResult(
        risk_analysis=risk_analysis,
        ai_insights=insights,
        score=50,
        risk_score=overall,
        degraded=True,
    )


def post_process(
    parsed: Mapping[str, Any],
    demo: Optional[DemoBaseline] = None,
) -> RiskEngineResult:
    """Validate the model's JSON and apply every deterministic override.

    Raises LLMResponseError when ``risk_analysis`` is missing or not an object.
    """
    raw_risk = parsed.get("risk_analysis")
    if not isinstance(raw_risk, dict):
        raise LLMResponseError("Model reply has no risk_analysis object")

    raw_scores = raw_risk.get("category_scores")
    category_scores = CategoryScores.model_validate(raw_scores if isinstance(raw_scores, dict) else {})
    for name in CATEGORY_WEIGHTS:
        if not isinstance(raw_scores, dict) or name not in raw_scores:
            logger.warning("Category %s missing from model reply, using %.1f", name, DEFAULT_CATEGORY_SCORE)

    overall = calculate_risk_score(category_scores)
    verdict, label = verdict_for(overall)
    score = clamp_score_100(parsed.get("score"))

    raw_explanations = raw_risk.get("explanations")
    risk_analysis = RiskAnalysis(
        overall_score=overall,
        category_scores=category_scores,
        explanations=CategoryExplanations.model_validate(
            raw_explanations if isinstance(raw_explanations, dict) else {}
        ),
        risk_level=risk_level_for(overall),
        top_risks=_top_risks(raw_risk.get("top_risks")),
    )
    if demo is not None:
        risk_analysis.demo_comparison = build_demo_comparison(demo, category_scores, overall, score)

    raw_insights = parsed.get("ai_insights") if isinstance(parsed.get("ai_insights"), dict) else {}
    raw_rec = raw_insights.get("recommendation") if isinstance(raw_insights.get("recommendation"), dict) else {}
    recommendation = Recommendation(
        verdict=verdict,
        verdict_label=label,
        confidence=raw_rec.get("confidence", 50),
        summary=str(raw_rec.get("summary") or ""),
        requirements=raw_rec.get("requirements"),
        next_steps=raw_rec.get("next_steps"),
    )
    if raw_rec.get("verdict") not in (None, verdict) or raw_rec.get("verdict_label") not in (None, label):
        logger.info(
            "Overriding model verdict %r/%r with %s/%r (overall %.1f)",
            raw_rec.get("verdict"), raw_rec.get("verdict_label"), verdict, label, overall,
        )

    return RiskEngineResult(
        risk_analysis=risk_analysis,
        ai_insights=AIInsights(
            recommendation=recommendation,
            score_factors=_score_factors(raw_insights.get("score_factors")),
        ),
        score=score,
        risk_score=overall,
    )


# ===================================================================== #
#  Entry point                                                            #
# ===================================================================== #

async def run_risk_analysis(
    idea_text: str,
    context: IdeaContext,
    wizard_answers: Optional[Mapping[str, Any]],
    questions: Optional[Sequence[WizardQuestion]],
    demo: Optional[DemoBaseline],
    competitors: Sequence[AnalyzedCompetitor],
    llm,
    *,
    cancel_token: Optional[CancelToken] = None,
) -> RiskEngineResult:
    """Run the risk/recommendation call and return a fully validated result.

    Parameters
    ----------
    idea_text : str
        Original idea description.
    context : IdeaContext
        Problem / audience / solution / monetization for this run.
    wizard_answers, questions
        Founder answers and the question texts used to format them.
    demo : DemoBaseline, optional
        Earlier demo scores to compare against.
    competitors : sequence of AnalyzedCompetitor
        Kept competitors from the classifier.
    llm
        Anything with ``async complete(prompt, *, max_tokens, temperature) -> str``.

    Returns
    -------
    RiskEngineResult
        ``degraded=True`` when the safe default record was used.
    """
    insights = extract_key_insights(wizard_answers)
    prompt = build_analysis_prompt(
        idea_text, context, wizard_answers, questions, demo, competitors, insights,
    )

    outcome = await try_call_with_retry(
        lambda: llm.complete(prompt, max_tokens=RISK_MAX_TOKENS, temperature=RISK_TEMPERATURE),
        classify_llm_error,
        initial_delay=RetryConfig.HEAVY_CALL_BACKOFF,
        operation_name="Risk Analysis",
        cancel_token=cancel_token,
    )
    if not outcome.ok:
        if classify_llm_error(outcome.error) == FATAL:
            raise outcome.error
        logger.error("Risk analysis failed after retries, using default record: %s", outcome.error)
        return default_risk_result(demo)

    try:
        parsed = extract_json_object(outcome.value or "")
        check_budget_confusion(parsed, insights)
        result = post_process(parsed, demo)
    except (LLMResponseError, ValidationError, TypeError) as exc:
        logger.error("Risk analysis reply unusable, using default record: %s", exc)
        return default_risk_result(demo)

    print(f"📊 [RISK] overall={result.risk_score} level={result.risk_analysis.risk_level} "
          f"verdict={result.ai_insights.recommendation.verdict_label}")
    return result
