"""Idea API tests — intake, analysis trigger, stored results, background entry point.

The analysis run itself is replaced: route tests patch the scheduled
task, and the ``analyze_idea`` tests patch the OpenAI and Serper clients.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from idea_risk.agents.idea_analysis.agent import analyze_idea
from idea_risk.agents.idea_analysis.http_client import RetryConfig
from idea_risk.database import Base, get_db
from idea_risk.exceptions import ConfigurationError, IdeaNotFoundError
from idea_risk.main import app
from idea_risk.models.competitor import Competitor
from idea_risk.models.idea import Idea
from idea_risk.schemas.analysis_schema import AnalysisResult
from idea_risk.schemas.competitor_schema import AnalyzedCompetitor
from idea_risk.services.idea_service import (
    SqlAlchemyAnalysisStore,
    competitor_to_row,
    enhance_price_details,
    get_idea,
    load_idea_input,
)
from idea_risk.services.risk_engine import default_risk_result, post_process

# ---------------------------------------------------------------------------
# Test database setup
# ---------------------------------------------------------------------------
TEST_DATABASE_URL = "sqlite:///./test_ideas.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


client = TestClient(app)


@pytest.fixture(autouse=True)
def setup_db():
    """Create tables before each test, drop after."""
    app.dependency_overrides[get_db] = override_get_db
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    app.dependency_overrides.pop(get_db, None)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
IDEA_PAYLOAD = {
    "idea_text": "A booking platform that connects city families with working farms for weekend stays",
    "questions": [
        {"id": "target_customer", "text": "Who is your target customer?", "type": "text", "required": True,
         "validation": {"min_length": 5}},
        {"id": "startup_budget", "text": "What is your startup budget?", "type": "number",
         "validation": {"min": 0}},
    ],
}


def _create_idea(payload=None):
    res = client.post("/ideas/", json=payload or IDEA_PAYLOAD)
    assert res.status_code == 201, f"Idea creation failed: {res.text}"
    return res.json()["idea_id"]


def _competitor(name, threat, tier="budget", details="", relevance="direct", website=None):
    return AnalyzedCompetitor(
        name=name,
        website=website,
        relevance=relevance,
        threat_level=threat,
        key_features=["Booking", "Reviews"],
        positioning={
            "target_market": "Urban families",
            "price_tier": tier,
            "price_details": details,
            "key_strengths": "Large inventory",
            "company_stage": "startup",
            "geographic_focus": "India",
        },
        our_differentiation="Direct farmer relationships",
        keep=True,
    )


def _result(competitors=()):
    risk = post_process({
        "risk_analysis": {"category_scores": {
            "competition_level": 9, "business_viability": 8,
            "market_timing": 6, "execution_difficulty": 6,
        }},
        "score": 45,
    })
    return AnalysisResult(
        problem="Farms lack access to tourists",
        audience="Urban families",
        solution="Farm stay marketplace",
        monetization="Commission per booking",
        title="Farm Weekends",
        score=risk.score,
        risk_score=risk.risk_score,
        risk_analysis=risk.risk_analysis,
        ai_insights=risk.ai_insights,
        competitors=list(competitors),
    )


class _Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, idea_id):
        self.calls.append(idea_id)


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------
class TestSubmitIdea:
    def test_create_and_read(self):
        idea_id = _create_idea()
        res = client.get(f"/ideas/{idea_id}")
        assert res.status_code == 200
        body = res.json()
        assert body["status"] == "pending"
        assert body["questions"][0]["id"] == "target_customer"
        assert body["score"] is None

    def test_short_idea_rejected(self):
        res = client.post("/ideas/", json={"idea_text": "Farm app"})
        assert res.status_code == 422

    def test_two_word_idea_rejected(self):
        res = client.post("/ideas/", json={"idea_text": "Farmstay marketplace"})
        assert res.status_code == 422

    def test_unknown_idea_404(self):
        assert client.get("/ideas/00000000-0000-0000-0000-000000000000").status_code == 404
        assert client.get("/ideas/not-a-uuid").status_code == 404


# ---------------------------------------------------------------------------
# Analysis trigger
# ---------------------------------------------------------------------------
class TestStartAnalysis:
    def test_schedules_run_and_marks_generating(self):
        idea_id = _create_idea()
        recorder = _Recorder()
        with patch("idea_risk.routes.ideas.analyze_idea", new=recorder):
            res = client.post(
                f"/ideas/{idea_id}/analyze",
                json={"wizard_answers": {"target_customer": "Urban families", "startup_budget": 25000}},
            )

        assert res.status_code == 202
        assert res.json()["status"] == "generating"
        assert recorder.calls == [idea_id]

        body = client.get(f"/ideas/{idea_id}").json()
        assert body["status"] == "generating"
        assert body["wizard_answers"]["startup_budget"] == 25000

    def test_conflict_while_generating(self):
        idea_id = _create_idea()
        with patch("idea_risk.routes.ideas.analyze_idea", new=_Recorder()):
            assert client.post(f"/ideas/{idea_id}/analyze").status_code == 202
            res = client.post(f"/ideas/{idea_id}/analyze")
        assert res.status_code == 409

    def test_invalid_wizard_answers_rejected(self):
        idea_id = _create_idea()
        recorder = _Recorder()
        with patch("idea_risk.routes.ideas.analyze_idea", new=recorder):
            res = client.post(
                f"/ideas/{idea_id}/analyze",
                json={"wizard_answers": {"target_customer": "Us", "startup_budget": -5}},
            )

        assert res.status_code == 422
        errors = res.json()["detail"]["errors"]
        assert errors == {
            "target_customer": "Minimum 5 characters required",
            "startup_budget": "Must be at least 0",
        }
        assert recorder.calls == []
        assert client.get(f"/ideas/{idea_id}").json()["status"] == "pending"

    def test_missing_idea_404(self):
        res = client.post("/ideas/00000000-0000-0000-0000-000000000000/analyze")
        assert res.status_code == 404


# ---------------------------------------------------------------------------
# Store + result retrieval
# ---------------------------------------------------------------------------
class TestAnalysisStore:
    def test_save_result_and_read_back(self):
        idea_id = _create_idea()
        store = SqlAlchemyAnalysisStore(TestingSessionLocal)
        store.mark_generating(idea_id)
        assert client.get(f"/ideas/{idea_id}/analysis").status_code == 404

        store.save_result(idea_id, _result([
            _competitor("LowThreat", 3),
            _competitor("HighThreat", 9, tier="enterprise", website="https://high.example"),
        ]))

        res = client.get(f"/ideas/{idea_id}/analysis")
        assert res.status_code == 200
        body = res.json()
        assert body["risk_score"] == 7.6
        assert body["risk_analysis"]["risk_level"] == "High"
        assert body["ai_insights"]["recommendation"]["verdict_label"] == "High Risk - Major Challenges"
        assert body["title"] == "Farm Weekends"

        idea = client.get(f"/ideas/{idea_id}").json()
        assert idea["status"] == "complete"
        assert idea["error_message"] is None

        competitors = client.get(f"/ideas/{idea_id}/competitors").json()
        assert [c["name"] for c in competitors] == ["HighThreat", "LowThreat"]
        assert competitors[0]["data_source"] == "web_search"
        assert competitors[0]["confidence_score"] == 8
        assert competitors[0]["pricing_model"] == "enterprise"
        assert competitors[1]["data_source"] == "ai_generated"

    def test_rerun_replaces_competitors(self):
        idea_id = _create_idea()
        store = SqlAlchemyAnalysisStore(TestingSessionLocal)
        store.save_result(idea_id, _result([_competitor("Old", 5)]))
        store.save_result(idea_id, _result([_competitor("New", 6)]))

        competitors = client.get(f"/ideas/{idea_id}/competitors").json()
        assert [c["name"] for c in competitors] == ["New"]

    def test_mark_failed(self):
        idea_id = _create_idea()
        SqlAlchemyAnalysisStore(TestingSessionLocal).mark_failed(idea_id, "OPENAI_API_KEY environment variable not set")

        body = client.get(f"/ideas/{idea_id}").json()
        assert body["status"] == "failed"
        assert body["error_message"] == "OPENAI_API_KEY environment variable not set"
        assert body["error_occurred_at"] is not None
        assert client.get(f"/ideas/{idea_id}/analysis").status_code == 404

    def test_demo_baseline_loaded_when_scored(self):
        idea_id = _create_idea()
        db = TestingSessionLocal()
        try:
            assert load_idea_input(db, idea_id).demo is None
            idea = get_idea(db, idea_id)
            idea.score = 60
            idea.risk_score = 5.5
            idea.risk_analysis_json = json.dumps(default_risk_result().risk_analysis.model_dump())
            db.commit()

            demo = load_idea_input(db, idea_id).demo
            assert demo.score == 60
            assert demo.risk_score == 5.5
            assert demo.risk_analysis["risk_level"] == "Medium"
        finally:
            db.close()


class TestCompetitorRowMapping:
    def test_description_and_price(self):
        row = competitor_to_row(
            "00000000-0000-0000-0000-000000000001",
            _competitor("Acme", 7, tier="mid-range", details="₹799 per night for two adults"),
        )
        assert row.pricing_model == "subscription"
        assert row.pricing_amount == 799
        assert row.description == (
            "Urban families. Geographic focus: India. Company stage: startup. "
            "mid-range pricing: ₹799 per night for two adults. Large inventory"
        )
        assert json.loads(row.positioning_json)["price_details"] == "₹799 per night for two adults"
        assert row.is_direct_competitor is True

    def test_generic_price_details_replaced(self):
        assert enhance_price_details("budget", "Not specified") == "Typically ₹100-500/user/month or freemium"
        assert enhance_price_details("premium", "") == "Typically ₹1500-3000/user/month"
        assert enhance_price_details("enterprise", "$20,000 per year, billed annually") == (
            "$20,000 per year, billed annually"
        )

    def test_budget_tier_amount_from_context(self):
        row = competitor_to_row(
            "00000000-0000-0000-0000-000000000001",
            _competitor("Cheap", 4, tier="budget", details="cheap", relevance="indirect"),
        )
        assert row.pricing_model == "freemium"
        assert row.pricing_amount == 100
        assert row.is_direct_competitor is False


# ---------------------------------------------------------------------------
# Background entry point
# ---------------------------------------------------------------------------
class FakeLLM:
    def __init__(self):
        self.closed = False

    async def complete(self, prompt, *, max_tokens, temperature):
        if "Discovered Competitors (batch)" in prompt:
            return json.dumps([{
                "name": "Acme", "website": "https://acme.com", "relevance": "direct",
                "threat_level": 8, "keep": True,
                "positioning": {"price_tier": "premium", "price_details": "Not specified"},
            }])
        if "senior business analyst" in prompt:
            return json.dumps({
                "risk_analysis": {"category_scores": {
                    "competition_level": 2, "business_viability": 3,
                    "market_timing": 2, "execution_difficulty": 3,
                }},
                "score": 80,
            })
        return "Farm Weekends"

    async def close(self):
        self.closed = True


class FakeSearch:
    async def search(self, query):
        return {"organic": [{"title": "Acme | Farm stays", "link": "https://acme.com", "snippet": "s"}]}


class TestAnalyzeIdea:
    @pytest.fixture(autouse=True)
    def no_retries(self, monkeypatch):
        monkeypatch.setattr(RetryConfig, "MAX_RETRIES", 0)

    def test_end_to_end_with_fake_clients(self):
        idea_id = _create_idea()
        llm = FakeLLM()
        with patch("idea_risk.agents.idea_analysis.agent.OpenAIChatClient", return_value=llm), \
                patch("idea_risk.agents.idea_analysis.agent.SerperSearchClient", return_value=FakeSearch()):
            result = asyncio.run(analyze_idea(idea_id, TestingSessionLocal))

        assert llm.closed
        assert result.risk_score == 2.5
        assert result.ai_insights.recommendation.verdict == "proceed"

        body = client.get(f"/ideas/{idea_id}").json()
        assert body["status"] == "complete"
        assert body["title"] == "Farm Weekends"
        competitors = client.get(f"/ideas/{idea_id}/competitors").json()
        assert [c["name"] for c in competitors] == ["Acme"]
        assert competitors[0]["positioning"]["price_details"] == "Typically ₹1500-3000/user/month"

    def test_missing_credentials_mark_failed(self, monkeypatch):
        idea_id = _create_idea()
        monkeypatch.setenv("SERPER_API_KEY", "test-serper-key")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        with pytest.raises(ConfigurationError):
            asyncio.run(analyze_idea(idea_id, TestingSessionLocal))

        body = client.get(f"/ideas/{idea_id}").json()
        assert body["status"] == "failed"
        assert "OPENAI_API_KEY" in body["error_message"]

    def test_missing_search_key_builds_no_model_client(self, monkeypatch):
        idea_id = _create_idea()
        monkeypatch.delenv("SERPER_API_KEY", raising=False)

        with patch("idea_risk.agents.idea_analysis.agent.OpenAIChatClient") as llm_cls:
            with pytest.raises(ConfigurationError):
                asyncio.run(analyze_idea(idea_id, TestingSessionLocal))

        llm_cls.assert_not_called()
        assert client.get(f"/ideas/{idea_id}").json()["status"] == "failed"

    def test_unreadable_stored_idea_marks_failed(self):
        idea_id = _create_idea()
        db = TestingSessionLocal()
        try:
            idea = get_idea(db, idea_id)
            idea.status = "generating"
            idea.questions_json = json.dumps([{"text": "Question without an id"}])
            db.commit()
        finally:
            db.close()

        with pytest.raises(ValidationError):
            asyncio.run(analyze_idea(idea_id, TestingSessionLocal))

        db = TestingSessionLocal()
        try:
            idea = get_idea(db, idea_id)
            assert idea.status == "failed"
            assert idea.error_message
            assert idea.error_occurred_at is not None
        finally:
            db.close()

    def test_unknown_idea_raises(self):
        with pytest.raises(IdeaNotFoundError):
            asyncio.run(analyze_idea("00000000-0000-0000-0000-000000000000", TestingSessionLocal))

    def test_rows_cleaned_with_idea(self):
        idea_id = _create_idea()
        SqlAlchemyAnalysisStore(TestingSessionLocal).save_result(idea_id, _result([_competitor("A", 5)]))
        db = TestingSessionLocal()
        try:
            assert db.query(Competitor).count() == 1
            db.delete(get_idea(db, idea_id))
            db.commit()
            assert db.query(Idea).count() == 0
            assert db.query(Competitor).count() == 0
        finally:
            db.close()
