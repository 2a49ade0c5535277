"""Scoring engine tests — weighted risk score, bands, and model-output repair."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from idea_risk.schemas.analysis_schema import CategoryScores
from idea_risk.services.scoring_engine import (
    calculate_risk_score,
    clamp_score_100,
    normalize_impact,
    normalize_timeline,
    risk_level_for,
    sanitize_factor,
    verdict_for,
)


class TestCalculateRiskScore:
    def test_weighted_sum_rounds_half_up(self):
        scores = {
            "competition_level": 9,
            "business_viability": 8,
            "market_timing": 6,
            "execution_difficulty": 6,
        }
        overall = calculate_risk_score(scores)
        assert overall == 7.6
        assert risk_level_for(overall) == "High"
        assert verdict_for(overall) == ("needs_work", "High Risk - Major Challenges")

    def test_accepts_category_scores_model(self):
        scores = CategoryScores(
            competition_level=9, business_viability=8, market_timing=6, execution_difficulty=6,
        )
        assert calculate_risk_score(scores) == 7.6

    def test_missing_categories_default_to_five(self):
        assert calculate_risk_score({}) == 5.0
        # 10*0.35 + 5*0.25 + 5*0.20 + 5*0.20 = 6.75 -> 6.8
        assert calculate_risk_score({"competition_level": 10}) == 6.8

    def test_non_numeric_category_defaults_to_five(self):
        assert calculate_risk_score({"competition_level": "high", "market_timing": None}) == 5.0

    def test_deterministic(self):
        scores = {"competition_level": 3.3, "business_viability": 7.1,
                  "market_timing": 2.2, "execution_difficulty": 8.8}
        assert calculate_risk_score(scores) == calculate_risk_score(dict(scores))

    def test_scores_are_clamped(self):
        assert calculate_risk_score({
            "competition_level": 42, "business_viability": 42,
            "market_timing": 42, "execution_difficulty": 42,
        }) == 10.0


class TestRiskLevel:
    @pytest.mark.parametrize("score,level", [
        (0.0, "Low"),
        (3.9, "Low"),
        (4.0, "Medium"),
        (6.9, "Medium"),
        (7.0, "High"),
        (10.0, "High"),
    ])
    def test_bands(self, score, level):
        assert risk_level_for(score) == level


class TestVerdict:
    @pytest.mark.parametrize("score,expected", [
        (4.999, ("proceed", "Strong Potential")),
        (5.0, ("needs_work", "Promising - Address Constraints")),
        (6.999, ("needs_work", "Promising - Address Constraints")),
        (7.0, ("needs_work", "High Risk - Major Challenges")),
        (8.499, ("needs_work", "High Risk - Major Challenges")),
        (8.5, ("needs_work", "Very High Risk - Reconsider Approach")),
    ])
    def test_boundaries_resolve_to_one_band(self, score, expected):
        assert verdict_for(score) == expected

    def test_zero_proceeds(self):
        assert verdict_for(0.0)[0] == "proceed"


class TestTimeline:
    def test_exact_value_kept(self):
        assert normalize_timeline("Before launch") == ("Before launch", False)

    def test_case_repaired(self):
        assert normalize_timeline("during mvp development") == ("During MVP development", True)

    def test_keyword_repaired(self):
        assert normalize_timeline("Within 3 months after launch") == ("Post-launch", True)

    def test_unknown_falls_back(self):
        assert normalize_timeline("Q3 2025") == ("During validation", True)
        assert normalize_timeline(None) == ("During validation", True)


class TestSanitizeFactor:
    def test_strips_dash_annotation(self):
        assert sanitize_factor("Strong demand - Positive - in urban areas") == "Strong demand in urban areas"

    def test_strips_bracketed_annotations(self):
        assert sanitize_factor("Crowded market (Negative)") == "Crowded market"
        assert sanitize_factor("[positive] Experienced founder") == "Experienced founder"

    def test_plain_text_untouched(self):
        assert sanitize_factor("Low upfront cost") == "Low upfront cost"


class TestSmallHelpers:
    def test_normalize_impact(self):
        assert normalize_impact("Negative") == "negative"
        assert normalize_impact("positive") == "positive"
        assert normalize_impact(None) == "positive"

    def test_clamp_score_100(self):
        assert clamp_score_100(150) == 100
        assert clamp_score_100("72") == 72
        assert clamp_score_100("n/a") == 50
        assert clamp_score_100(True) == 50
