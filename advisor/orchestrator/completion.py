"""Completion evaluator: pure functions over a Session value.

``missing`` / ``completed`` / ``is_complete`` answer for one stage;
``refresh_slots`` recomputes the session's derived slot lists after a merge.
Optional slots never block completion but are reported once filled.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional

from advisor.orchestrator.stages import Flow, get_flow
from advisor.orchestrator.types import CTA_CHOICES, GOAL_TYPES, LEVELS, Session, Stage

ALLOCATION_TOLERANCE = 2.0
MAX_HORIZON_YEARS = 50

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$")
CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def allocation_total(allocation: Mapping[str, float]) -> float:
    return round(sum(float(v) for v in allocation.values()), 4)


def allocation_is_complete(
    allocation: Mapping[str, float],
    tolerance: float = ALLOCATION_TOLERANCE,
) -> bool:
    """True when the allocation is non-empty, non-negative and sums to 100 within tolerance."""
    if not allocation:
        return False
    if any(float(v) < 0 for v in allocation.values()):
        return False
    return abs(allocation_total(allocation) - 100.0) <= tolerance


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and EMAIL_RE.match(value.strip()) is not None


def is_valid_currency(value: Optional[str]) -> bool:
    return bool(value) and CURRENCY_RE.match(value) is not None


def _positive(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def slot_filled(slot: str, session: Session, tolerance: float = ALLOCATION_TOLERANCE) -> bool:
    """Whether *slot* holds a valid value in *session*."""
    goals, portfolio, contact = session.goals, session.portfolio, session.contact
    if slot == "consent":
        return contact.consent is True
    if slot == "goal_type":
        return goals.goal_type in GOAL_TYPES
    if slot == "target_amount":
        return _positive(goals.target_amount)
    if slot == "horizon_years":
        return _positive(goals.horizon_years) and goals.horizon_years <= MAX_HORIZON_YEARS
    if slot == "risk_tolerance":
        return goals.risk_tolerance in LEVELS
    if slot == "liquidity_need":
        return goals.liquidity_need in LEVELS
    if slot == "allocation":
        return allocation_is_complete(portfolio.allocation, tolerance)
    if slot == "currency":
        return is_valid_currency(portfolio.currency)
    if slot == "holdings":
        return bool(portfolio.holdings)
    if slot == "sectors":
        return bool(portfolio.sectors)
    if slot == "email":
        return is_valid_email(contact.email)
    if slot == "analysis_result":
        return bool(session.analysis_result)
    if slot == "cta_choice":
        return contact.cta_choice in CTA_CHOICES
    return False


def _flow(session: Session, flow: Optional[Flow]) -> Flow:
    return flow if flow is not None else get_flow(session.flow)


def missing(
    stage: Stage,
    session: Session,
    flow: Optional[Flow] = None,
    tolerance: float = ALLOCATION_TOLERANCE,
) -> List[str]:
    """Required slots of *stage* not yet satisfied, in descriptor order."""
    descriptor = _flow(session, flow).descriptor(stage)
    return [s for s in descriptor.required if not slot_filled(s, session, tolerance)]


def completed(
    stage: Stage,
    session: Session,
    flow: Optional[Flow] = None,
    tolerance: float = ALLOCATION_TOLERANCE,
) -> List[str]:
    """Filled required slots followed by filled optional slots of *stage*."""
    descriptor = _flow(session, flow).descriptor(stage)
    slots = list(descriptor.required) + list(descriptor.optional)
    return [s for s in slots if slot_filled(s, session, tolerance)]


def is_complete(
    stage: Stage,
    session: Session,
    flow: Optional[Flow] = None,
    tolerance: float = ALLOCATION_TOLERANCE,
) -> bool:
    return not missing(stage, session, flow, tolerance)


def next_missing(
    stage: Stage,
    session: Session,
    flow: Optional[Flow] = None,
    tolerance: float = ALLOCATION_TOLERANCE,
) -> Optional[str]:
    slots = missing(stage, session, flow, tolerance)
    return slots[0] if slots else None


def unfilled_optional(
    stage: Stage,
    session: Session,
    flow: Optional[Flow] = None,
    tolerance: float = ALLOCATION_TOLERANCE,
) -> List[str]:
    descriptor = _flow(session, flow).descriptor(stage)
    return [s for s in descriptor.optional if not slot_filled(s, session, tolerance)]


def refresh_slots(
    session: Session,
    flow: Optional[Flow] = None,
    tolerance: float = ALLOCATION_TOLERANCE,
) -> None:
    """Recompute ``completed_slots`` (cumulative through the current stage) and
    ``missing_slots`` (current stage only)."""
    flow = _flow(session, flow)
    done: List[str] = []
    for descriptor in flow.through(session.stage):
        for slot in completed(descriptor.stage, session, flow, tolerance):
            if slot not in done:
                done.append(slot)
    session.completed_slots = done
    session.missing_slots = missing(session.stage, session, flow, tolerance)


def slot_progress(session: Session, flow: Optional[Flow] = None) -> Dict[str, int]:
    """Counts for the current stage's required slots: {"done": n, "total": m}."""
    descriptor = _flow(session, flow).descriptor(session.stage)
    total = len(descriptor.required)
    return {"done": total - len(missing(session.stage, session, flow)), "total": total}
