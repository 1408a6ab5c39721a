"""End-to-end tests for Orchestrator: routing, transitions, branches and failure paths.

The no-op LLM client is used unless a test needs a failing one, so every
path here runs on deterministic parsing and fallback questions.
"""
from __future__ import annotations

import asyncio
import json
import unittest
from typing import List

from advisor.clients.llm.base import BaseLLMClient
from advisor.clients.llm.providers.noop import NoOpLLMClient
from advisor.core.exceptions import UnknownStageError
from advisor.orchestrator import completion
from advisor.orchestrator.events import TurnEvent, TurnEventSink
from advisor.orchestrator.handlers.base import BaseStageHandler
from advisor.orchestrator.orchestrator import Orchestrator
from advisor.orchestrator.response import ERROR_TEXT
from advisor.orchestrator.router import StageRouter
from advisor.orchestrator.stages import STANDARD_FLOW
from advisor.orchestrator.types import (
    FlowName,
    OrchestratorConfig,
    OrchestratorResult,
    Stage,
)

GOALS_MESSAGE = "Growth, $500,000 target in 10 years, high risk tolerance, low liquidity"


def _run(coro):
    return asyncio.run(coro)


def _texts(result: OrchestratorResult) -> List[str]:
    lines: List[str] = []
    for block in result.display_spec.blocks:
        if block.type.value == "conversation_text":
            lines.extend(json.loads(block.content))
    return lines


def _block_types(result: OrchestratorResult) -> List[str]:
    return [b.type.value for b in result.display_spec.blocks]


class RecordingSink(TurnEventSink):
    def __init__(self) -> None:
        self.events: List[TurnEvent] = []

    def publish(self, event: TurnEvent) -> None:
        self.events.append(event)


class BrokenLLM(BaseLLMClient):
    @property
    def provider(self) -> str:
        return "broken"

    async def complete(self, prompt: str, *, model: str | None = None) -> str:
        raise RuntimeError("upstream unavailable")


class ScriptedLLM(BaseLLMClient):
    """Answers extraction prompts containing a trigger phrase with a canned JSON reply."""

    def __init__(self, trigger: str, reply: str) -> None:
        self.trigger = trigger
        self.reply = reply

    @property
    def provider(self) -> str:
        return "scripted"

    async def complete(self, prompt: str, *, model: str | None = None) -> str:
        return self.reply if self.trigger in prompt else "{}"


class _Base(unittest.TestCase):
    flow = FlowName.STANDARD

    def setUp(self) -> None:
        self.sink = RecordingSink()
        self.orch = Orchestrator(NoOpLLMClient(), OrchestratorConfig(flow=self.flow), sink=self.sink)

    async def _say(self, *messages: str, session_id: str = "s-1") -> List[OrchestratorResult]:
        results = []
        for message in messages:
            results.append(await self.orch.process(message, session_id=session_id))
        return results

    async def _to_portfolio(self, session_id: str = "s-1") -> None:
        await self._say("yes", GOALS_MESSAGE, session_id=session_id)


class TestFirstTurn(_Base):
    def test_new_session_starts_at_qualify(self) -> None:
        result = _run(self.orch.process("hello"))
        self.assertEqual(result.session["stage"], "qualify")
        self.assertTrue(result.session["id"].startswith("session-"))
        self.assertEqual(result.session["missing_slots"], ["consent"])
        self.assertEqual(_block_types(result), ["summary_bullets", "conversation_text", "cta_group"])
        self.assertEqual(result.usage.llm_calls, 0)

    def test_result_dict_shape(self) -> None:
        payload = _run(self.orch.process("hello", session_id="abc")).to_dict()
        self.assertEqual(set(payload), {"displaySpec", "session", "usage"})
        self.assertEqual(set(payload["session"]), {"id", "stage", "completed_slots", "missing_slots", "key_facts"})
        for block in payload["displaySpec"]["blocks"]:
            json.loads(block["content"])


class TestStandardFlow(_Base):
    def test_consent_advances_one_step(self) -> None:
        result = _run(self._say("yes"))[-1]
        self.assertEqual(result.session["stage"], "goals")
        self.assertEqual(result.session["completed_slots"], ["consent"])
        self.assertTrue(result.advanced)
        self.assertIn("What is your main investment objective?", _texts(result))

    def test_goals_in_one_message(self) -> None:
        result = _run(self._say("yes", GOALS_MESSAGE))[-1]
        self.assertEqual(result.session["stage"], "portfolio")
        self.assertIn("Goal: growth", result.session["key_facts"])
        self.assertIn("Target: $500,000", result.session["key_facts"])
        self.assertIn("Horizon: 10 years", result.session["key_facts"])

    def test_partial_goals_ask_for_next_slot(self) -> None:
        result = _run(self._say("yes", "growth over 10 years"))[-1]
        self.assertEqual(result.session["stage"], "goals")
        self.assertEqual(result.session["missing_slots"], ["target_amount", "risk_tolerance", "liquidity_need"])
        self.assertIn("What is your target investment amount?", _texts(result))

    def test_empty_extraction_leaves_slots_unchanged(self) -> None:
        async def scenario():
            first = (await self._say("yes", "growth over 10 years"))[-1]
            second = (await self._say("hmm, let me think"))[-1]
            return first, second

        first, second = _run(scenario())
        self.assertEqual(first.session["completed_slots"], second.session["completed_slots"])
        self.assertEqual(first.session["missing_slots"], second.session["missing_slots"])
        self.assertEqual(second.session["stage"], "goals")

    def test_full_allocation_completes_portfolio_stage(self) -> None:
        async def scenario():
            await self._to_portfolio()
            result = (await self._say("60% stocks, 30% bonds, 10% cash, USD"))[-1]
            session = await self.orch.store.get("s-1")
            return result, session

        result, session = _run(scenario())
        self.assertIn("allocation", result.session["completed_slots"])
        self.assertIn("currency", result.session["completed_slots"])
        self.assertTrue(completion.is_complete(Stage.PORTFOLIO, session, STANDARD_FLOW))
        self.assertIn("table", _block_types(result))
        # optional detail is offered once before moving on
        self.assertEqual(result.session["stage"], "portfolio")
        self.assertTrue(session.portfolio.optional_offered)

    def test_skip_after_optional_offer_advances(self) -> None:
        async def scenario():
            await self._to_portfolio()
            return await self._say("60% stocks, 30% bonds, 10% cash, USD", "skip")

        offer, skipped = _run(scenario())
        self.assertEqual(offer.session["stage"], "portfolio")
        self.assertEqual(skipped.session["stage"], "email_capture")

    def test_no_holdings_shortcut_advances(self) -> None:
        async def scenario():
            await self._to_portfolio()
            result = (await self._say("I haven't invested yet"))[-1]
            return result, await self.orch.store.get("s-1")

        result, session = _run(scenario())
        self.assertEqual(result.session["stage"], "email_capture")
        self.assertEqual(session.portfolio.allocation, {"cash": 100.0})
        self.assertEqual(session.portfolio.currency, "USD")
        self.assertTrue(session.portfolio.new_investor)

    def test_allocation_beats_no_holdings_phrase(self) -> None:
        async def scenario():
            await self._to_portfolio()
            result = (await self._say("I'm not invested in crypto: 70% stocks, 30% bonds, USD"))[-1]
            return result, await self.orch.store.get("s-1")

        result, session = _run(scenario())
        self.assertEqual(session.portfolio.allocation, {"stocks": 70.0, "bonds": 30.0})
        self.assertFalse(session.portfolio.new_investor)
        self.assertEqual(result.session["stage"], "portfolio")
        self.assertTrue(session.portfolio.optional_offered)

    def test_suggested_allocation_fills_portfolio(self) -> None:
        async def scenario():
            await self._to_portfolio()
            result = (await self._say("Can you suggest an allocation for me?"))[-1]
            return result, await self.orch.store.get("s-1")

        result, session = _run(scenario())
        self.assertEqual(session.portfolio.allocation, {"stocks": 80.0, "bonds": 15.0, "cash": 5.0})
        self.assertEqual(session.portfolio.currency, "USD")
        self.assertEqual(result.session["stage"], "email_capture")
        tables = [b.payload() for b in result.display_spec.blocks if b.type.value == "table"]
        self.assertEqual(len(tables), 1)
        self.assertEqual(tables[0]["rows"], [["Stocks", "80%"], ["Bonds", "15%"], ["Cash", "5%"]])

    def test_partial_allocation_then_remainder(self) -> None:
        async def scenario():
            await self._to_portfolio()
            partial = (await self._say("50% stocks, 40% bonds"))[-1]
            completed = (await self._say("10% cash"))[-1]
            return partial, completed

        partial, completed = _run(scenario())
        self.assertNotIn("allocation", partial.session["completed_slots"])
        self.assertIn("allocation", partial.session["missing_slots"])
        self.assertTrue(any("remaining 10%" in t for t in _texts(partial)))
        self.assertIn("allocation", completed.session["completed_slots"])
        self.assertEqual(completed.session["missing_slots"], ["currency"])

    def test_allocation_over_hundred_is_rejected(self) -> None:
        async def scenario():
            await self._to_portfolio()
            result = (await self._say("70% stocks, 50% bonds"))[-1]
            return result, await self.orch.store.get("s-1")

        result, session = _run(scenario())
        self.assertEqual(result.session["stage"], "portfolio")
        self.assertTrue(any("120%" in t for t in _texts(result)))
        self.assertEqual(session.portfolio.allocation, {})

    def test_invalid_email_is_quoted_and_does_not_advance(self) -> None:
        async def scenario():
            await self._to_portfolio()
            await self._say("I haven't invested yet")
            return (await self._say("jane@example"))[-1]

        result = _run(scenario())
        self.assertEqual(result.session["stage"], "email_capture")
        self.assertTrue(any("'jane@example'" in t for t in _texts(result)))

    def test_walkthrough_to_end_and_restart(self) -> None:
        async def scenario():
            await self._to_portfolio()
            return await self._say(
                "60% stocks, 30% bonds, 10% cash, USD",
                "skip",
                "jane@example.com",
                "continue",
                "continue",
                "book_call",
                "thanks",
                "restart",
            )

        results = _run(scenario())
        stages = [r.session["stage"] for r in results]
        self.assertEqual(
            stages,
            ["portfolio", "email_capture", "analyze", "explain", "cta", "end", "end", "qualify"],
        )
        explain_turn = results[4]
        self.assertIn("table", _block_types(explain_turn))
        self.assertEqual(results[-1].session["completed_slots"], [])
        self.assertEqual(results[-1].session["id"], "s-1")

    def test_stage_moves_at_most_one_step_per_turn(self) -> None:
        async def scenario():
            return await self._say(
                "yes", GOALS_MESSAGE, "60% stocks, 30% bonds, 10% cash, USD", "skip", "jane@example.com",
            )

        order = STANDARD_FLOW.order
        previous = order.index(Stage.QUALIFY)
        for result in _run(scenario()):
            current = order.index(Stage(result.session["stage"]))
            self.assertIn(current - previous, (0, 1))
            previous = current


class TestSimplifiedFlow(_Base):
    flow = FlowName.SIMPLIFIED

    def test_amount_timeline_then_merged_explain(self) -> None:
        async def scenario():
            return await self._say(
                "yes",
                "growth, $200,000 in 15 years",
                "I haven't invested yet",
                "jane@example.com",
                "continue",
                "continue",
                "email_report",
            )

        results = _run(scenario())
        stages = [r.session["stage"] for r in results]
        self.assertEqual(
            stages,
            ["amount_timeline", "portfolio", "email_capture", "analyze", "explain", "explain", "end"],
        )
        self.assertIn("cta_group", _block_types(results[5]))


class TestRecoveryAndFailures(_Base):
    def test_contaminated_session_is_reset_not_routed(self) -> None:
        async def scenario():
            await self.orch.store.create("dirty")
            await self.orch.store.update("dirty", stage=Stage.EMAIL_CAPTURE, completed_slots=[])
            with self.assertLogs("advisor.orchestrator.orchestrator", level="WARNING") as logs:
                result = await self.orch.process("jane@example.com", session_id="dirty")
            return result, logs

        result, logs = _run(scenario())
        self.assertEqual(result.session["stage"], "qualify")
        self.assertEqual(result.session["id"], "dirty")
        self.assertTrue(any("contaminated" in line for line in logs.output))

    def test_failing_llm_still_returns_display_spec(self) -> None:
        orch = Orchestrator(BrokenLLM(), OrchestratorConfig())

        async def scenario():
            await orch.process("yes", session_id="x")
            return await orch.process("something vague", session_id="x")

        result = _run(scenario())
        self.assertFalse(result.error)
        self.assertEqual(result.session["stage"], "goals")
        self.assertTrue(_texts(result))
        self.assertEqual(_texts(result)[-1], "What is your main investment objective?")

    def test_unexpected_handler_fault_returns_error_spec(self) -> None:
        class Boom(BaseStageHandler):
            stages = (Stage.QUALIFY,)

            async def handle(self, session, message, *, flow):
                session.stage = Stage.GOALS
                raise ValueError("bug")

        router = StageRouter()
        router.register(Boom(None))
        orch = Orchestrator(NoOpLLMClient(), OrchestratorConfig(), router=router, sink=self.sink)

        async def scenario():
            result = await orch.process("yes", session_id="e")
            return result, await orch.store.get("e")

        result, session = _run(scenario())
        self.assertTrue(result.error)
        self.assertEqual(_texts(result), [ERROR_TEXT])
        self.assertEqual(_block_types(result), ["conversation_text", "cta_group"])
        self.assertEqual(session.stage, Stage.QUALIFY)
        self.assertEqual(session.turn_count, 0)

    def test_unknown_stage_propagates(self) -> None:
        orch = Orchestrator(NoOpLLMClient(), OrchestratorConfig(), router=StageRouter())
        with self.assertRaises(UnknownStageError):
            _run(orch.process("yes"))

    def test_turn_events_are_published(self) -> None:
        _run(self._say("hello", "yes"))
        self.assertEqual([e.turn_index for e in self.sink.events], [1, 2])
        self.assertEqual(self.sink.events[-1].stage, "goals")
        self.assertEqual(self.sink.events[-1].user_message, "yes")
        self.assertTrue(self.sink.events[-1].assistant_text)

    def test_clear_session(self) -> None:
        async def scenario():
            await self._say("yes")
            cleared = await self.orch.clear("s-1")
            result = await self.orch.process("hi", session_id="s-1")
            return cleared, result

        cleared, result = _run(scenario())
        self.assertTrue(cleared)
        self.assertEqual(result.session["stage"], "qualify")

    def test_clearing_unknown_ids_leaves_no_locks(self) -> None:
        async def scenario():
            return [await self.orch.clear(f"nope-{i}") for i in range(100)]

        cleared = _run(scenario())
        self.assertFalse(any(cleared))
        self.assertEqual(self.orch.store._locks, {})


class TestConcurrency(_Base):
    def test_same_session_turns_are_serialized(self) -> None:
        async def scenario():
            await self.orch.process("hello", session_id="c")
            return await asyncio.gather(
                self.orch.process("yes", session_id="c"),
                self.orch.process(GOALS_MESSAGE, session_id="c"),
            )

        first, second = _run(scenario())
        self.assertEqual(first.session["stage"], "goals")
        self.assertEqual(second.session["stage"], "portfolio")


class TestLLMSlotFilling(unittest.TestCase):
    def test_complete_llm_allocation_survives_partial_match(self) -> None:
        llm = ScriptedLLM(
            "the rest in bonds",
            '{"allocation": {"stocks": 60, "bonds": 40}, "currency": "USD"}',
        )
        orch = Orchestrator(llm, OrchestratorConfig(generate_prompts=False))

        async def scenario():
            for message in ("yes", GOALS_MESSAGE):
                await orch.process(message, session_id="llm")
            result = await orch.process("60% stocks and the rest in bonds, USD", session_id="llm")
            return result, await orch.store.get("llm")

        result, session = _run(scenario())
        self.assertEqual(session.portfolio.allocation, {"stocks": 60.0, "bonds": 40.0})
        self.assertIn("allocation", result.session["completed_slots"])
        self.assertNotIn("allocation", result.session["missing_slots"])
        self.assertEqual(result.usage.llm_calls, 1)
