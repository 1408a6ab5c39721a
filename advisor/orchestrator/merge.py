"""Merge validated extractions into session payloads.

Merges are additive: a field the user did not mention never erases one they
already gave. Allocation is the one slot with structural rules (a complete
new allocation replaces the old one; a partial one tops up) and a bound
check that raises ``ValidationError`` so the handler can ask again.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from advisor.core.exceptions import ValidationError
from advisor.orchestrator.completion import (
    ALLOCATION_TOLERANCE,
    allocation_is_complete,
    allocation_total,
    is_valid_currency,
)
from advisor.orchestrator.schemas import GoalsExtraction, PortfolioExtraction
from advisor.orchestrator.types import ASSET_CLASSES, GoalsPayload, PortfolioPayload, Session

logger = logging.getLogger(__name__)

SHORT_HORIZON_YEARS = 3


def merge_goals(goals: GoalsPayload, extraction: GoalsExtraction) -> List[str]:
    """Copy non-empty extracted fields onto *goals*. Returns the updated field names."""
    updated: List[str] = []
    for name, value in extraction.fields_set().items():
        if hasattr(goals, name):
            setattr(goals, name, value)
            updated.append(name)
    return updated


def _ordered(allocation: Mapping[str, float]) -> Dict[str, float]:
    known = [a for a in ASSET_CLASSES if a in allocation]
    extra = [a for a in allocation if a not in ASSET_CLASSES]
    return {a: float(allocation[a]) for a in known + extra}


def merge_allocation(
    current: Mapping[str, float],
    incoming: Mapping[str, float],
    tolerance: float = ALLOCATION_TOLERANCE,
) -> Dict[str, float]:
    """Combine an existing allocation with a newly extracted one.

    Raises ValidationError when the result has a negative weight or sums to
    more than 100 plus *tolerance*.
    """
    negative = {k: v for k, v in incoming.items() if float(v) < 0}
    if negative:
        asset, value = next(iter(negative.items()))
        raise ValidationError(
            f"Allocation for {asset} cannot be negative ({value:g}%).",
            details={"slot": "allocation", "asset": asset, "value": value},
        )

    if allocation_is_complete(incoming, tolerance):
        return _ordered(incoming)
    if allocation_is_complete(current, tolerance):
        logger.debug("[Merge] Ignoring partial allocation %s over complete one", dict(incoming))
        return _ordered(current)

    merged = dict(current)
    merged.update({k: float(v) for k, v in incoming.items()})
    total = allocation_total(merged)
    if total > 100.0 + tolerance:
        raise ValidationError(
            f"Your allocation adds up to {total:g}%, which is more than 100%.",
            details={"slot": "allocation", "total": total, "allocation": merged},
        )
    return _ordered(merged)


def default_allocation(
    risk_tolerance: Optional[str],
    goal_type: Optional[str],
    horizon_years: Optional[float] = None,
) -> Dict[str, float]:
    """Starter allocation from risk and goal, nudged towards cash for short horizons."""
    if risk_tolerance == "high" and goal_type == "growth":
        allocation = {"stocks": 80.0, "bonds": 15.0, "cash": 5.0}
    elif risk_tolerance == "medium":
        allocation = {"stocks": 60.0, "bonds": 30.0, "cash": 10.0}
    elif risk_tolerance == "low" or goal_type == "preservation":
        allocation = {"stocks": 30.0, "bonds": 60.0, "cash": 10.0}
    else:
        allocation = {"stocks": 60.0, "bonds": 30.0, "cash": 10.0}

    if horizon_years is not None and horizon_years <= SHORT_HORIZON_YEARS and allocation["stocks"] > 30:
        allocation["stocks"] -= 10.0
        allocation["cash"] += 10.0
    return allocation


def merge_portfolio(
    session: Session,
    extraction: PortfolioExtraction,
    *,
    tolerance: float = ALLOCATION_TOLERANCE,
    default_currency: str = "USD",
    max_holdings: int = 10,
) -> List[str]:
    """Apply a portfolio extraction (including branch shortcuts) to *session*.

    Returns the updated field names. Raises ValidationError for an allocation
    out of bounds or an invalid currency code; the session is left untouched
    in that case.
    """
    portfolio: PortfolioPayload = session.portfolio
    updated: List[str] = []

    if extraction.no_holdings_yet and not extraction.allocation:
        portfolio.allocation = {"cash": 100.0}
        portfolio.currency = portfolio.currency or extraction.currency or default_currency
        portfolio.new_investor = True
        portfolio.optional_offered = True
        return ["allocation", "currency", "new_investor"]

    if extraction.currency is not None and not is_valid_currency(extraction.currency):
        raise ValidationError(
            f"'{extraction.currency}' is not a 3-letter currency code.",
            details={"slot": "currency", "value": extraction.currency},
        )

    if extraction.sectors:
        sector_total = allocation_total({**portfolio.sectors, **extraction.sectors})
        if sector_total > 100.0 + tolerance:
            raise ValidationError(
                f"Your sector breakdown adds up to {sector_total:g}%, which is more than 100%.",
                details={"slot": "sectors", "total": sector_total},
            )

    if extraction.allocation:
        allocation = merge_allocation(portfolio.allocation, extraction.allocation, tolerance)
    elif extraction.suggest_default and not allocation_is_complete(portfolio.allocation, tolerance):
        goals = session.goals
        allocation = default_allocation(goals.risk_tolerance, goals.goal_type, goals.horizon_years)
        portfolio.optional_offered = True
        logger.info("[Merge] Using default allocation %s", allocation)
    else:
        allocation = None

    if allocation is not None and allocation != portfolio.allocation:
        portfolio.allocation = allocation
        updated.append("allocation")
    if extraction.currency:
        portfolio.currency = extraction.currency
        updated.append("currency")
    elif extraction.suggest_default and not portfolio.currency:
        portfolio.currency = default_currency
        updated.append("currency")
    if extraction.holdings:
        names = {h["name"].lower() for h in portfolio.holdings}
        for item in extraction.holdings:
            if len(portfolio.holdings) >= max_holdings:
                break
            if item.name.lower() not in names:
                portfolio.holdings.append({"name": item.name, "weight": item.weight})
                names.add(item.name.lower())
        updated.append("holdings")
    if extraction.sectors:
        portfolio.sectors.update(extraction.sectors)
        updated.append("sectors")
    if extraction.portfolio_value is not None:
        portfolio.portfolio_value = extraction.portfolio_value
        updated.append("portfolio_value")
    return updated


# ── Key facts ────────────────────────────────────────────────────────────────


def format_amount(amount: float, currency: Optional[str] = None) -> str:
    symbol = {"USD": "$", "EUR": "€", "GBP": "£"}.get(currency or "USD")
    text = f"{amount:,.0f}"
    return f"{symbol}{text}" if symbol else f"{text} {currency}"


def format_percent(value: float) -> str:
    return f"{value:g}%"


def format_allocation(allocation: Mapping[str, float]) -> str:
    return ", ".join(
        f"{format_percent(v)} {k.replace('_', ' ')}" for k, v in _ordered(allocation).items()
    )


def _years(value: float) -> str:
    return f"{value:g} year" + ("" if value == 1 else "s")


def build_key_facts(session: Session, tolerance: float = ALLOCATION_TOLERANCE) -> List[str]:
    """Human-readable summary lines rebuilt from the payloads on every turn."""
    goals, portfolio, contact = session.goals, session.portfolio, session.contact
    currency = portfolio.currency
    facts: List[str] = []
    if goals.goal_type:
        facts.append(f"Goal: {goals.goal_type.replace('_', ' ')}")
    if goals.target_amount:
        facts.append(f"Target: {format_amount(goals.target_amount, currency)}")
    if goals.horizon_years:
        facts.append(f"Horizon: {_years(goals.horizon_years)}")
    if goals.risk_tolerance:
        facts.append(f"Risk: {goals.risk_tolerance}")
    if goals.liquidity_need:
        facts.append(f"Liquidity: {goals.liquidity_need}")
    if portfolio.new_investor:
        facts.append("New investor: no holdings yet")
    elif portfolio.allocation:
        label = "Allocation" if allocation_is_complete(portfolio.allocation, tolerance) else "Allocation so far"
        facts.append(f"{label}: {format_allocation(portfolio.allocation)}")
    if currency:
        facts.append(f"Currency: {currency}")
    if portfolio.holdings:
        facts.append("Holdings: " + ", ".join(h["name"] for h in portfolio.holdings))
    if contact.email:
        facts.append(f"Email: {contact.email}")
    if session.analysis_result:
        alignment = session.analysis_result.get("alignment")
        if alignment:
            facts.append(f"Analysis: {alignment.replace('_', ' ')}")
    if contact.cta_choice:
        facts.append(f"Next step: {contact.cta_choice.replace('_', ' ')}")
    return facts
