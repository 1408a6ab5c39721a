"""Tests for RuleBasedAnalyzer."""
from __future__ import annotations

from advisor.orchestrator.analysis import RuleBasedAnalyzer, expected_return, required_growth
from advisor.orchestrator.types import GoalsPayload, PortfolioPayload


def _goals(**kwargs) -> GoalsPayload:
    defaults = dict(goal_type="growth", target_amount=200000.0, horizon_years=10.0, risk_tolerance="high")
    defaults.update(kwargs)
    return GoalsPayload(**defaults)


class TestHelpers:
    def test_expected_return_is_weighted(self):
        assert expected_return({"stocks": 60.0, "bonds": 30.0, "cash": 10.0}) == 5.25

    def test_required_growth_needs_portfolio_value(self):
        assert required_growth(_goals(), None) is None
        assert required_growth(_goals(), 100000.0) == 7.18


class TestRuleBasedAnalyzer:
    def test_matching_allocation_is_aligned(self):
        portfolio = PortfolioPayload(allocation={"stocks": 80.0, "bonds": 15.0, "cash": 5.0}, currency="USD")
        result = RuleBasedAnalyzer().analyze(_goals(), portfolio)
        assert result["alignment"] == "aligned"
        assert result["max_drift"] == 0.0
        assert result["notes"] == ["Your allocation is broadly in line with your goals and risk tolerance."]
        assert result["currency"] == "USD"

    def test_drift_is_classified_and_explained(self):
        portfolio = PortfolioPayload(allocation={"stocks": 60.0, "bonds": 30.0, "cash": 10.0}, currency="USD")
        result = RuleBasedAnalyzer().analyze(_goals(), portfolio)
        assert result["drift"] == {"stocks": -20.0, "bonds": 15.0, "cash": 5.0}
        assert result["alignment"] == "moderate_drift"
        assert result["notes"][0].startswith("Stocks is 20 points below")
        assert result["notes"][1].startswith("Bonds is 15 points above")

    def test_large_drift_is_misaligned(self):
        portfolio = PortfolioPayload(allocation={"cash": 100.0}, currency="USD", new_investor=True)
        result = RuleBasedAnalyzer().analyze(_goals(), portfolio)
        assert result["alignment"] == "misaligned"
        assert any("starting from cash" in n for n in result["notes"])

    def test_growth_gap_note(self):
        portfolio = PortfolioPayload(
            allocation={"stocks": 80.0, "bonds": 15.0, "cash": 5.0},
            currency="USD",
            portfolio_value=100000.0,
        )
        result = RuleBasedAnalyzer().analyze(_goals(), portfolio)
        assert result["required_growth"] == 7.18
        assert any("7.18% a year" in n for n in result["notes"])
