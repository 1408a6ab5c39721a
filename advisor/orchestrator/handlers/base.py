"""Abstract base for stage handlers and the shared turn helpers.

A handler owns one stage: extract, merge, evaluate, then either advance one
step or ask for the next missing slot. Handlers mutate the working copy of
the session they are given; the orchestrator persists it afterwards.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

from advisor.orchestrator import completion
from advisor.orchestrator.analysis import PortfolioAnalyzer, RuleBasedAnalyzer
from advisor.orchestrator.extractor import SlotExtractor
from advisor.orchestrator.parsing import combine
from advisor.orchestrator.prompts import FALLBACK_QUESTIONS, PromptWriter
from advisor.orchestrator.schemas import ExtractionModel, validate_partial
from advisor.orchestrator.session_rules import working_header
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import OrchestratorConfig, Session, Stage, StageOutcome

CONTINUE_ACTION = {"label": "Continue", "action": "continue"}
START_ACTION = {"label": "Get started", "action": "start"}
RESTART_ACTION = {"label": "Start a new analysis", "action": "restart"}
SKIP_ACTION = {"label": "Skip", "action": "skip"}
CTA_ACTIONS: List[Dict[str, str]] = [
    {"label": "Book a call with an advisor", "action": "book_call"},
    {"label": "Email me the report", "action": "email_report"},
]


@dataclass
class HandlerContext:
    """Collaborators shared by every stage handler."""

    extractor: SlotExtractor
    prompts: PromptWriter
    config: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    analyzer: PortfolioAnalyzer = field(default_factory=RuleBasedAnalyzer)


class BaseStageHandler(ABC):
    """Every stage handler implements ``handle()`` and returns a StageOutcome."""

    stages: Tuple[Stage, ...] = ()

    def __init__(self, ctx: HandlerContext) -> None:
        self._ctx = ctx

    @property
    def tolerance(self) -> float:
        return self._ctx.config.allocation_tolerance

    @abstractmethod
    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        ...

    # ── Shared helpers ────────────────────────────────────────────────────────

    async def _extract(
        self,
        session: Session,
        message: str,
        flow: Flow,
        schema: Type[ExtractionModel],
        deterministic: Optional[Dict[str, Any]] = None,
    ) -> Tuple[ExtractionModel, int]:
        """LLM extraction combined with deterministic signals (which win per field)."""
        result = await self._ctx.extractor.extract(
            message,
            schema,
            missing_slots=completion.missing(session.stage, session, flow, self.tolerance),
            context=working_header(session, flow),
        )
        calls = 1 if result.llm_called else 0
        if not deterministic:
            return result.data, calls
        merged = combine(result.data.fields_set(), deterministic)
        return validate_partial(schema, merged), calls

    async def _finish(
        self,
        session: Session,
        flow: Flow,
        outcome: StageOutcome,
        *,
        summary: Optional[str] = None,
    ) -> StageOutcome:
        """Advance one step when the stage is complete, otherwise ask for the next slot."""
        completion.refresh_slots(session, flow, self.tolerance)
        if completion.is_complete(session.stage, session, flow, self.tolerance):
            if summary:
                outcome.text.append(summary)
            self._advance(session, flow, outcome)
            await self._enter(session, flow, outcome)
        else:
            await self._ask(session, flow, outcome)
        return outcome

    def _advance(self, session: Session, flow: Flow, outcome: StageOutcome) -> None:
        nxt = flow.next_stage(session.stage)
        if nxt is None:
            return
        session.stage = nxt
        completion.refresh_slots(session, flow, self.tolerance)
        outcome.advanced = True

    async def _ask(self, session: Session, flow: Flow, outcome: StageOutcome) -> None:
        slot = completion.next_missing(session.stage, session, flow, self.tolerance)
        if slot is None:
            return
        text, called = await self._ctx.prompts.question_for(slot, session, flow)
        outcome.text.append(text)
        if called:
            outcome.llm_calls += 1

    async def _enter(self, session: Session, flow: Flow, outcome: StageOutcome) -> None:
        """Opening text and actions for the stage just entered."""
        stage = session.stage
        if stage == Stage.ANALYZE:
            outcome.text.append(FALLBACK_QUESTIONS["analysis_result"])
            outcome.actions = [{"label": "Analyze my portfolio", "action": "continue"}]
        elif stage == Stage.EXPLAIN:
            outcome.text.append("Your analysis is ready.")
            outcome.actions = [{"label": "Show my results", "action": "continue"}]
        elif stage == Stage.CTA:
            outcome.text.append(FALLBACK_QUESTIONS["cta_choice"])
            outcome.actions = list(CTA_ACTIONS)
        elif stage == Stage.END:
            outcome.text.append("Thank you! Your portfolio review is complete.")
            outcome.actions = [RESTART_ACTION]
        else:
            await self._ask(session, flow, outcome)
