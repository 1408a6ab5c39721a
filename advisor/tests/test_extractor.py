"""Unit tests for SlotExtractor and PromptWriter failure handling."""
from __future__ import annotations

import asyncio
import unittest
from typing import List, Optional

from advisor.clients.llm.base import BaseLLMClient
from advisor.clients.llm.providers.noop import NoOpLLMClient
from advisor.orchestrator.extractor import SlotExtractor
from advisor.orchestrator.prompts import FALLBACK_QUESTIONS, PromptWriter, fallback_question
from advisor.orchestrator.schemas import ContactExtraction, GoalsExtraction, PortfolioExtraction
from advisor.orchestrator.stages import STANDARD_FLOW
from advisor.orchestrator.types import Session, Stage


def _run(coro):
    return asyncio.run(coro)


class FakeLLM(BaseLLMClient):
    """Returns canned replies, raises, or stalls."""

    def __init__(self, reply: str = "{}", *, error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []

    @property
    def provider(self) -> str:
        return "fake"

    async def complete(self, prompt: str, *, model: str | None = None) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class TestSlotExtractor(unittest.TestCase):
    def test_valid_json_is_validated(self) -> None:
        llm = FakeLLM('{"goal_type": "growth", "target_amount": "500000", "risk_tolerance": null}')
        outcome = _run(SlotExtractor(llm).extract("growth please", GoalsExtraction, missing_slots=["goal_type"]))
        self.assertTrue(outcome.llm_called)
        self.assertIsNone(outcome.error)
        self.assertEqual(outcome.data.fields_set(), {"goal_type": "growth", "target_amount": 500000.0})
        self.assertIn("goal_type", llm.prompts[0])

    def test_fenced_json_is_accepted(self) -> None:
        llm = FakeLLM('```json\n{"email": "a@b.co"}\n```')
        outcome = _run(SlotExtractor(llm).extract("a@b.co", ContactExtraction))
        self.assertEqual(outcome.data.email, "a@b.co")

    def test_json_embedded_in_prose(self) -> None:
        llm = FakeLLM('Sure! Here it is: {"currency": "eur"} hope that helps')
        outcome = _run(SlotExtractor(llm).extract("euros", PortfolioExtraction))
        self.assertEqual(outcome.data.currency, "EUR")

    def test_malformed_output_degrades_to_empty(self) -> None:
        outcome = _run(SlotExtractor(FakeLLM("I could not find anything")).extract("hm", GoalsExtraction))
        self.assertTrue(outcome.data.is_empty())
        self.assertEqual(outcome.error, "EXTRACTION_ERROR")

    def test_invalid_field_values_are_dropped(self) -> None:
        llm = FakeLLM('{"horizon_years": 500, "goal_type": "income"}')
        outcome = _run(SlotExtractor(llm).extract("income for 500 years", GoalsExtraction))
        self.assertEqual(outcome.data.fields_set(), {"goal_type": "income"})

    def test_exception_degrades_to_empty(self) -> None:
        llm = FakeLLM(error=RuntimeError("connection reset"))
        outcome = _run(SlotExtractor(llm).extract("growth", GoalsExtraction))
        self.assertTrue(outcome.data.is_empty())
        self.assertIn("connection reset", outcome.error)

    def test_timeout_degrades_to_empty(self) -> None:
        llm = FakeLLM('{"goal_type": "growth"}', delay=0.5)
        outcome = _run(SlotExtractor(llm, timeout_seconds=0.01).extract("growth", GoalsExtraction))
        self.assertTrue(outcome.data.is_empty())
        self.assertEqual(outcome.error, "timeout")

    def test_noop_client_is_not_called(self) -> None:
        outcome = _run(SlotExtractor(NoOpLLMClient()).extract("growth", GoalsExtraction))
        self.assertFalse(outcome.llm_called)
        self.assertTrue(outcome.data.is_empty())


class TestPromptWriter(unittest.TestCase):
    def test_partial_allocation_question(self) -> None:
        session = Session(session_id="s", stage=Stage.PORTFOLIO)
        session.portfolio.allocation = {"stocks": 50.0, "bonds": 40.0}
        text = fallback_question("allocation", session)
        self.assertIn("90%", text)
        self.assertIn("remaining 10%", text)

    def test_llm_phrasing_used_when_available(self) -> None:
        writer = PromptWriter(FakeLLM('"What are you investing for?"'))
        text, called = _run(writer.question_for("goal_type", Session(session_id="s", stage=Stage.GOALS), STANDARD_FLOW))
        self.assertTrue(called)
        self.assertEqual(text, "What are you investing for?")

    def test_failure_falls_back_to_fixed_question(self) -> None:
        writer = PromptWriter(FakeLLM(error=RuntimeError("boom")))
        text, called = _run(writer.question_for("goal_type", Session(session_id="s", stage=Stage.GOALS), STANDARD_FLOW))
        self.assertTrue(called)
        self.assertEqual(text, FALLBACK_QUESTIONS["goal_type"])

    def test_disabled_writer_never_calls_llm(self) -> None:
        llm = FakeLLM("rephrased")
        writer = PromptWriter(llm, enabled=False)
        text, called = _run(writer.question_for("email", Session(session_id="s"), STANDARD_FLOW))
        self.assertFalse(called)
        self.assertEqual(text, FALLBACK_QUESTIONS["email"])
        self.assertEqual(llm.prompts, [])
