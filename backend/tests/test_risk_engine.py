"""Risk & recommendation engine tests — deterministic overrides and failure modes."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json

import pytest

from idea_risk.agents.idea_analysis.http_client import RetryConfig
from idea_risk.schemas.competitor_schema import AnalyzedCompetitor
from idea_risk.schemas.idea_schema import DemoBaseline, IdeaContext, WizardQuestion
from idea_risk.services.risk_engine import (
    PENDING_LABEL,
    build_analysis_prompt,
    check_budget_confusion,
    default_risk_result,
    post_process,
    run_risk_analysis,
)
from idea_risk.services.wizard_context import extract_key_insights

IDEA = "A booking platform that connects city families with working farms for weekend stays"
CONTEXT = IdeaContext(
    problem="Farms lack direct access to urban tourists",
    audience="Families in tier-1 cities",
    solution="Curated farm stay marketplace",
    monetization="Commission per booking",
)


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(RetryConfig, "MAX_RETRIES", 1)
    monkeypatch.setattr(RetryConfig, "HEAVY_CALL_BACKOFF", 0.0)
    monkeypatch.setattr(RetryConfig, "MAX_BACKOFF", 0.0)


def _model_reply(**overrides):
    reply = {
        "risk_analysis": {
            "overall_score": 3.2,
            "category_scores": {
                "competition_level": 9,
                "business_viability": 8,
                "market_timing": 6,
                "execution_difficulty": 6,
            },
            "explanations": {
                "competition_level": "Several funded platforms already list farm stays.",
                "business_viability": "Thin margins on weekend bookings.",
                "market_timing": "Agritourism demand is growing.",
                "execution_difficulty": "Supply onboarding is manual.",
            },
            "risk_level": "Low",
            "top_risks": [
                {
                    "title": "Supply acquisition",
                    "severity": 8,
                    "category": "execution",
                    "why_it_matters": "Without farms there is nothing to book.",
                    "mitigation_steps": ["Sign 10 farms before launch"],
                    "timeline": "During MVP development",
                },
                {
                    "title": "Seasonality",
                    "severity": "7",
                    "category": "market",
                    "why_it_matters": "Monsoon months are slow.",
                    "mitigation_steps": "Offer indoor workshops",
                    "timeline": "Q3",
                },
            ],
        },
        "ai_insights": {
            "recommendation": {
                "verdict": "proceed",
                "verdict_label": "Strong Potential",
                "confidence": 80,
                "summary": "Promising niche with real supply risk.",
                "requirements": ["Validate willingness to pay"],
                "next_steps": ["Interview 20 families"],
            },
            "score_factors": [
                {"factor": "Growing agritourism - Positive -", "impact": "Positive", "category": "market"},
                {"factor": "Crowded market (Negative)", "impact": "negative", "category": "competition"},
            ],
        },
        "score": 41,
    }
    reply.update(overrides)
    return reply


class FakeLLM:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    async def complete(self, prompt, *, max_tokens, temperature):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def _run(llm, demo=None, competitors=(), wizard_answers=None):
    return asyncio.run(run_risk_analysis(
        IDEA, CONTEXT, wizard_answers or {}, [], demo, list(competitors), llm,
    ))


class TestDeterministicOverrides:
    def test_score_level_and_verdict_recomputed(self):
        result = _run(FakeLLM(reply=json.dumps(_model_reply())))

        assert result.risk_score == 7.6
        assert result.risk_analysis.overall_score == 7.6
        assert result.risk_analysis.risk_level == "High"
        rec = result.ai_insights.recommendation
        assert (rec.verdict, rec.verdict_label) == ("needs_work", "High Risk - Major Challenges")
        assert rec.confidence == 80
        assert result.score == 41
        assert not result.degraded

    def test_timelines_repaired_onto_enum(self):
        result = _run(FakeLLM(reply=json.dumps(_model_reply())))
        timelines = [r.timeline for r in result.risk_analysis.top_risks]
        assert timelines == ["During MVP development", "During validation"]
        assert result.risk_analysis.top_risks[1].severity == 7
        assert result.risk_analysis.top_risks[1].mitigation_steps == ["Offer indoor workshops"]

    def test_score_factors_sanitized(self):
        result = _run(FakeLLM(reply=json.dumps(_model_reply())))
        factors = [(f.factor, f.impact) for f in result.ai_insights.score_factors]
        assert factors == [("Growing agritourism", "positive"), ("Crowded market", "negative")]

    def test_missing_categories_default(self):
        reply = _model_reply()
        reply["risk_analysis"]["category_scores"] = {"competition_level": 10}
        result = post_process(reply)
        assert result.risk_analysis.category_scores.market_timing == 5.0
        assert result.risk_score == 6.8
        assert result.risk_analysis.risk_level == "Medium"

    def test_missing_ai_insights_still_gets_verdict(self):
        reply = _model_reply()
        del reply["ai_insights"]
        result = post_process(reply)
        assert result.ai_insights.recommendation.verdict == "needs_work"
        assert result.ai_insights.score_factors == []

    def test_scalar_list_fields_do_not_fail_analysis(self):
        reply = _model_reply()
        reply["ai_insights"]["recommendation"]["requirements"] = 5
        reply["ai_insights"]["recommendation"]["next_steps"] = True
        reply["risk_analysis"]["top_risks"][0]["mitigation_steps"] = 3
        result = _run(FakeLLM(reply=json.dumps(reply)))

        assert not result.degraded
        assert result.ai_insights.recommendation.requirements == []
        assert result.ai_insights.recommendation.next_steps == []
        assert result.risk_analysis.top_risks[0].mitigation_steps == []

    def test_top_risks_capped_at_three(self):
        reply = _model_reply()
        risk = reply["risk_analysis"]["top_risks"][0]
        reply["risk_analysis"]["top_risks"] = [
            {**risk, "title": f"Risk {i}"} for i in range(1, 6)
        ]
        result = post_process(reply)
        assert [r.title for r in result.risk_analysis.top_risks] == ["Risk 1", "Risk 2", "Risk 3"]

    def test_demo_comparison_computed(self):
        demo = DemoBaseline(
            score=60,
            risk_score=5.0,
            risk_analysis={"category_scores": {"competition_level": 6.0, "market_timing": 7.0}},
        )
        result = post_process(_model_reply(), demo)
        comparison = result.risk_analysis.demo_comparison
        assert comparison.has_demo
        assert comparison.risk_difference == 2.6
        assert comparison.score_difference == -19
        assert comparison.category_changes["competition_level"].change == 3.0
        assert comparison.category_changes["market_timing"].change == -1.0
        assert "business_viability" not in comparison.category_changes


class TestFailureModes:
    def test_retryable_exhaustion_returns_default(self):
        llm = FakeLLM(error=RuntimeError("Model overloaded"))
        result = _run(llm)

        assert result.degraded
        assert len(llm.prompts) == 2
        assert result.risk_analysis.risk_level == "Medium"
        assert result.risk_score == 5.0
        assert result.ai_insights.recommendation.verdict == "needs_work"
        assert result.ai_insights.recommendation.verdict_label == PENDING_LABEL
        assert result.risk_analysis.top_risks == []

    def test_fatal_error_propagates(self):
        llm = FakeLLM(error=PermissionError("invalid api key"))
        with pytest.raises(PermissionError):
            _run(llm)
        assert len(llm.prompts) == 1

    def test_unparseable_reply_returns_default(self):
        result = _run(FakeLLM(reply="The idea looks risky overall."))
        assert result.degraded
        assert result.risk_score == 5.0

    def test_reply_without_risk_analysis_returns_default(self):
        result = _run(FakeLLM(reply=json.dumps({"ai_insights": {}, "score": 70})))
        assert result.degraded

    def test_default_record_with_demo(self):
        result = default_risk_result(DemoBaseline(score=55, risk_score=4.5))
        assert result.risk_analysis.demo_comparison.risk_difference == 0.5
        assert result.score == 50


class TestPrompt:
    def test_includes_competitors_and_budget_guard(self):
        competitor = AnalyzedCompetitor(
            name="FarmStay Co", website="https://farmstay.co", relevance="direct",
            threat_level=9, keep=True,
        )
        prompt = build_analysis_prompt(
            IDEA, CONTEXT, {"startup_budget": 25000}, [WizardQuestion(id="startup_budget", text="Budget?")],
            DemoBaseline(score=60, risk_score=5.0), [competitor],
        )
        assert "FarmStay Co (https://farmstay.co)" in prompt
        assert "9/10 (Critical)" in prompt
        assert "$25,000" in prompt
        assert "Q: Budget?\nA: 25000" in prompt
        assert "Demo Risk Score: 5.0" in prompt

    def test_no_competitor_section_when_empty(self):
        prompt = build_analysis_prompt(IDEA, CONTEXT, {}, [], None, [])
        assert "COMPETITORS DISCOVERED" not in prompt
        assert "DEMO COMPARISON" not in prompt


class TestBudgetConfusion:
    def test_flags_market_spending_used_as_budget(self):
        insights = extract_key_insights({
            "startup_budget": 25000,
            "customer_spending": "$200 per weekend",
        })
        reply = _model_reply()
        reply["risk_analysis"]["explanations"]["business_viability"] = "With only a $200 budget this is hard."
        assert check_budget_confusion(reply, insights) == [200]

    def test_no_flag_when_budget_used_correctly(self):
        insights = extract_key_insights({
            "startup_budget": 25000,
            "customer_spending": "$200 per weekend",
        })
        assert check_budget_confusion(_model_reply(), insights) == []
