"""
Portfolio analysis used by the analyze and explain stages.

The analyzer is a pluggable collaborator; ``RuleBasedAnalyzer`` compares the
current allocation against the default allocation for the user's goals and
estimates returns from fixed per-class assumptions. Its output is an opaque
dict stored on the session as ``analysis_result``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from advisor.orchestrator.merge import default_allocation
from advisor.orchestrator.types import ASSET_CLASSES, GoalsPayload, PortfolioPayload

EXPECTED_RETURNS: Dict[str, float] = {
    "stocks": 7.0,
    "bonds": 3.0,
    "cash": 1.5,
    "commodities": 4.0,
    "real_estate": 5.0,
    "alternatives": 5.0,
}

ALIGNED_DRIFT = 10.0
MODERATE_DRIFT = 25.0


class PortfolioAnalyzer(ABC):
    @abstractmethod
    def analyze(self, goals: GoalsPayload, portfolio: PortfolioPayload) -> Dict[str, Any]:
        ...


def expected_return(allocation: Dict[str, float]) -> float:
    """Weighted annual return in percent."""
    total = sum(allocation.values()) or 1.0
    weighted = sum(EXPECTED_RETURNS.get(k, EXPECTED_RETURNS["alternatives"]) * v for k, v in allocation.items())
    return round(weighted / total, 2)


def required_growth(goals: GoalsPayload, portfolio_value: Optional[float]) -> Optional[float]:
    """Annual growth in percent needed to reach the target, or None without the inputs."""
    if not (goals.target_amount and goals.horizon_years and portfolio_value):
        return None
    ratio = goals.target_amount / portfolio_value
    return round((ratio ** (1.0 / goals.horizon_years) - 1.0) * 100.0, 2)


class RuleBasedAnalyzer(PortfolioAnalyzer):
    def analyze(self, goals: GoalsPayload, portfolio: PortfolioPayload) -> Dict[str, Any]:
        current = dict(portfolio.allocation)
        recommended = default_allocation(goals.risk_tolerance, goals.goal_type, goals.horizon_years)

        classes = [c for c in ASSET_CLASSES if c in current or c in recommended]
        classes += [c for c in current if c not in classes]
        drift = {c: round(current.get(c, 0.0) - recommended.get(c, 0.0), 2) for c in classes}
        max_drift = max((abs(v) for v in drift.values()), default=0.0)
        if max_drift <= ALIGNED_DRIFT:
            alignment = "aligned"
        elif max_drift <= MODERATE_DRIFT:
            alignment = "moderate_drift"
        else:
            alignment = "misaligned"

        current_return = expected_return(current) if current else 0.0
        needed = required_growth(goals, portfolio.portfolio_value)

        notes: List[str] = []
        for asset, delta in sorted(drift.items(), key=lambda kv: -abs(kv[1])):
            if abs(delta) <= ALIGNED_DRIFT:
                continue
            direction = "above" if delta > 0 else "below"
            notes.append(
                f"{asset.replace('_', ' ').capitalize()} is {abs(delta):g} points {direction} "
                f"the suggested weight for your profile."
            )
        if portfolio.new_investor:
            notes.append("You are starting from cash, so the suggested mix is a starting point for your first investments.")
        if needed is not None and needed > current_return:
            notes.append(
                f"Reaching your target needs about {needed:g}% a year, above the "
                f"{current_return:g}% your current mix is expected to earn."
            )
        if not notes:
            notes.append("Your allocation is broadly in line with your goals and risk tolerance.")

        return {
            "current_allocation": current,
            "recommended_allocation": recommended,
            "drift": drift,
            "max_drift": round(max_drift, 2),
            "alignment": alignment,
            "equity_share": round(current.get("stocks", 0.0), 2),
            "expected_return": current_return,
            "recommended_return": expected_return(recommended),
            "required_growth": needed,
            "currency": portfolio.currency,
            "notes": notes,
        }
