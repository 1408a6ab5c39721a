"""Unit tests for the completion evaluator."""
from __future__ import annotations

import unittest

from advisor.orchestrator import completion
from advisor.orchestrator.stages import SIMPLIFIED_FLOW, STANDARD_FLOW
from advisor.orchestrator.types import Session, Stage


def _session(**kwargs) -> Session:
    session = Session(session_id="s-1")
    for key, value in kwargs.items():
        setattr(session, key, value)
    return session


def _fill_goals(session: Session) -> None:
    session.goals.goal_type = "growth"
    session.goals.target_amount = 500_000.0
    session.goals.horizon_years = 10.0
    session.goals.risk_tolerance = "high"
    session.goals.liquidity_need = "low"


class TestAllocation(unittest.TestCase):
    def test_exact_hundred_is_complete(self) -> None:
        self.assertTrue(completion.allocation_is_complete({"stocks": 60, "bonds": 30, "cash": 10}))

    def test_within_tolerance_is_complete(self) -> None:
        self.assertTrue(completion.allocation_is_complete({"stocks": 33.3, "bonds": 33.3, "cash": 33.3}))

    def test_outside_tolerance_is_incomplete(self) -> None:
        self.assertFalse(completion.allocation_is_complete({"stocks": 50, "bonds": 40}))
        self.assertFalse(completion.allocation_is_complete({"stocks": 103}))

    def test_negative_weight_is_incomplete(self) -> None:
        self.assertFalse(completion.allocation_is_complete({"stocks": 110, "cash": -10}))

    def test_empty_is_incomplete(self) -> None:
        self.assertFalse(completion.allocation_is_complete({}))


class TestStageCompletion(unittest.TestCase):
    def test_goals_requires_all_five_slots(self) -> None:
        session = _session(stage=Stage.GOALS)
        session.goals.goal_type = "growth"
        session.goals.target_amount = 1000.0
        self.assertEqual(
            completion.missing(Stage.GOALS, session, STANDARD_FLOW),
            ["horizon_years", "risk_tolerance", "liquidity_need"],
        )
        self.assertFalse(completion.is_complete(Stage.GOALS, session, STANDARD_FLOW))

    def test_simplified_amount_timeline_needs_three(self) -> None:
        session = _session(stage=Stage.AMOUNT_TIMELINE)
        session.goals.goal_type = "income"
        session.goals.target_amount = 20_000.0
        session.goals.horizon_years = 5.0
        self.assertTrue(completion.is_complete(Stage.AMOUNT_TIMELINE, session, SIMPLIFIED_FLOW))

    def test_horizon_over_fifty_years_not_filled(self) -> None:
        session = _session()
        session.goals.horizon_years = 60.0
        self.assertFalse(completion.slot_filled("horizon_years", session))

    def test_optional_slots_never_block_but_are_reported(self) -> None:
        session = _session(stage=Stage.PORTFOLIO)
        session.portfolio.allocation = {"stocks": 60.0, "bonds": 40.0}
        session.portfolio.currency = "EUR"
        self.assertTrue(completion.is_complete(Stage.PORTFOLIO, session, STANDARD_FLOW))
        self.assertEqual(completion.completed(Stage.PORTFOLIO, session, STANDARD_FLOW), ["allocation", "currency"])

        session.portfolio.holdings = [{"name": "Apple", "weight": 10.0}]
        self.assertEqual(
            completion.completed(Stage.PORTFOLIO, session, STANDARD_FLOW),
            ["allocation", "currency", "holdings"],
        )
        self.assertEqual(completion.unfilled_optional(Stage.PORTFOLIO, session, STANDARD_FLOW), ["sectors"])

    def test_lowercase_currency_not_filled(self) -> None:
        session = _session()
        session.portfolio.currency = "usd"
        self.assertFalse(completion.slot_filled("currency", session))

    def test_stage_without_required_slots_is_complete(self) -> None:
        session = _session(stage=Stage.EXPLAIN)
        self.assertTrue(completion.is_complete(Stage.EXPLAIN, session, STANDARD_FLOW))


class TestRefreshSlots(unittest.TestCase):
    def test_completed_is_cumulative_missing_is_current_stage(self) -> None:
        session = _session(stage=Stage.PORTFOLIO)
        session.contact.consent = True
        _fill_goals(session)
        session.portfolio.allocation = {"stocks": 50.0}

        completion.refresh_slots(session, STANDARD_FLOW)

        self.assertEqual(
            session.completed_slots,
            ["consent", "goal_type", "target_amount", "horizon_years", "risk_tolerance", "liquidity_need"],
        )
        self.assertEqual(session.missing_slots, ["allocation", "currency"])

    def test_refresh_is_idempotent(self) -> None:
        session = _session(stage=Stage.GOALS)
        session.contact.consent = True
        completion.refresh_slots(session, STANDARD_FLOW)
        first = (list(session.completed_slots), list(session.missing_slots))
        completion.refresh_slots(session, STANDARD_FLOW)
        self.assertEqual(first, (session.completed_slots, session.missing_slots))

    def test_slot_progress_counts_current_stage(self) -> None:
        session = _session(stage=Stage.GOALS)
        session.goals.goal_type = "growth"
        self.assertEqual(completion.slot_progress(session, STANDARD_FLOW), {"done": 1, "total": 5})
