"""Orchestrator: single entry point for one inbound message.

Per turn, under the session's lock:
  fetch-or-create -> contamination check -> restart check -> route to the
  stage handler -> refresh derived slots and key facts -> save -> build the
  response -> publish a turn event (fire-and-forget).

Handlers work on a copy of the session; an unexpected handler fault leaves
the stored session untouched and returns the error display spec.
``UnknownStageError`` is a deployment bug and propagates.
"""
from __future__ import annotations

import copy
import logging
import time
from typing import TYPE_CHECKING, Optional

from advisor.core.exceptions import UnknownStageError
from advisor.core.logger import bind_session
from advisor.orchestrator.analysis import PortfolioAnalyzer, RuleBasedAnalyzer
from advisor.orchestrator.completion import refresh_slots
from advisor.orchestrator.events import NullEventSink, TurnEvent, TurnEventSink
from advisor.orchestrator.extractor import SlotExtractor
from advisor.orchestrator.handlers.base import START_ACTION, HandlerContext
from advisor.orchestrator.merge import build_key_facts
from advisor.orchestrator.parsing import is_restart
from advisor.orchestrator.prompts import PromptWriter
from advisor.orchestrator.response import ResponseBuilder
from advisor.orchestrator.router import StageRouter, build_default_router
from advisor.orchestrator.session_rules import is_contaminated
from advisor.orchestrator.session_store import InMemorySessionStore, SessionStore
from advisor.orchestrator.stages import Flow, get_flow
from advisor.orchestrator.types import (
    OrchestratorConfig,
    OrchestratorResult,
    Session,
    StageOutcome,
    TurnUsage,
)

if TYPE_CHECKING:
    from advisor.clients.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)


class Orchestrator:
    """Drives sessions through their flow one message at a time.

    Stateless between calls apart from the session store it was given.
    """

    def __init__(
        self,
        llm: "BaseLLMClient",
        config: Optional[OrchestratorConfig] = None,
        *,
        store: Optional[SessionStore] = None,
        sink: Optional[TurnEventSink] = None,
        analyzer: Optional[PortfolioAnalyzer] = None,
        router: Optional[StageRouter] = None,
    ) -> None:
        self._llm = llm
        self._config = config or OrchestratorConfig()
        cfg = self._config
        self._store = store or InMemorySessionStore(
            ttl_seconds=cfg.session_ttl_seconds, default_flow=cfg.flow,
        )
        self._sink = sink or NullEventSink()
        self._ctx = HandlerContext(
            extractor=SlotExtractor(
                llm,
                timeout_seconds=cfg.llm_timeout_seconds,
                model=cfg.extraction_model,
                max_tokens=cfg.extraction_max_tokens,
            ),
            prompts=PromptWriter(
                llm,
                timeout_seconds=cfg.llm_timeout_seconds,
                enabled=cfg.generate_prompts,
                model=cfg.prompt_model,
                tolerance=cfg.allocation_tolerance,
            ),
            config=cfg,
            analyzer=analyzer or RuleBasedAnalyzer(),
        )
        self._router = router or build_default_router(self._ctx)
        self._builder = ResponseBuilder()
        logger.info(
            "Orchestrator: ready (flow=%s, llm=%s)", cfg.flow.value, llm.provider,
        )

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    async def process(self, message: str, session_id: Optional[str] = None) -> OrchestratorResult:
        """Handle one user message and return the caller-facing result."""
        t_start = time.monotonic()
        message = (message or "").strip()
        if not session_id:
            session_id = (await self._store.create(flow=self._config.flow)).session_id

        async with self._store.lock(session_id):
            with bind_session(session_id):
                return await self._process_locked(session_id, message, t_start)

    async def clear(self, session_id: str) -> bool:
        async with self._store.lock(session_id):
            cleared = await self._store.clear(session_id)
        if cleared:
            logger.info("Orchestrator: session %s cleared", session_id)
        return cleared

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _process_locked(self, session_id: str, message: str, t_start: float) -> OrchestratorResult:
        session = await self._store.get(session_id)
        if session is None:
            session = await self._store.create(session_id, flow=self._config.flow)
        flow = get_flow(session.flow)

        if is_contaminated(session, flow):
            logger.warning(
                "Orchestrator: session %s contaminated (stage=%s, no completed slots); resetting",
                session_id,
                session.stage.value,
            )
            session = await self._reset(session)

        if is_restart(message) and session.turn_count > 0:
            logger.info("Orchestrator: restart requested for %s", session_id)
            session = await self._reset(session)
            outcome = await self._restart_outcome(session, flow)
            return await self._commit(session, copy.deepcopy(session), message, outcome, flow, t_start)

        working = copy.deepcopy(session)
        try:
            outcome = await self._router.route(working, message, flow=flow)
        except UnknownStageError:
            raise
        except Exception as exc:
            elapsed = (time.monotonic() - t_start) * 1000
            logger.error(
                "Orchestrator: handler failed at stage=%s: %s", session.stage.value, exc, exc_info=True,
            )
            result = self._builder.error(session, TurnUsage(llm_calls=0, total_ms=elapsed))
            self._publish(session, message, result, turn_index=session.turn_count + 1)
            return result

        return await self._commit(session, working, message, outcome, flow, t_start)

    async def _commit(
        self,
        before: Session,
        working: Session,
        message: str,
        outcome: StageOutcome,
        flow: Flow,
        t_start: float,
    ) -> OrchestratorResult:
        tol = self._config.allocation_tolerance
        working.turn_count += 1
        refresh_slots(working, flow, tol)
        working.key_facts = build_key_facts(working, tol)
        await self._store.update(working.session_id, **working.mutable_fields())

        elapsed = (time.monotonic() - t_start) * 1000
        usage = TurnUsage(llm_calls=outcome.llm_calls, total_ms=elapsed)
        result = self._builder.build(outcome, working, flow, usage)
        self._publish(working, message, result, turn_index=working.turn_count)
        logger.info(
            "Orchestrator: stage=%s->%s advanced=%s llm_calls=%d total=%.0fms",
            before.stage.value,
            working.stage.value,
            outcome.advanced,
            outcome.llm_calls,
            elapsed,
        )
        return result

    async def _reset(self, session: Session) -> Session:
        await self._store.clear(session.session_id)
        return await self._store.create(session.session_id, flow=session.flow)

    async def _restart_outcome(self, session: Session, flow: Flow) -> StageOutcome:
        question, called = await self._ctx.prompts.question_for("consent", session, flow)
        return StageOutcome(
            text=["Let's start a new analysis.", question],
            actions=[START_ACTION],
            llm_calls=1 if called else 0,
        )

    def _publish(self, session: Session, message: str, result: OrchestratorResult, *, turn_index: int) -> None:
        usage = result.usage or TurnUsage()
        event = TurnEvent(
            session_id=session.session_id,
            flow=session.flow.value,
            stage=session.stage.value,
            turn_index=turn_index,
            user_message=message,
            display_spec=result.display_spec.to_dict(),
            assistant_text=result.display_spec.text(),
            goals=session.goals.to_dict(),
            portfolio=session.portfolio.to_dict(),
            analysis_result=session.analysis_result,
            contact_email=session.contact.email,
            session_meta={
                "completed_slots": list(session.completed_slots),
                "missing_slots": list(session.missing_slots),
                "key_facts": list(session.key_facts),
                "cta_choice": session.contact.cta_choice,
                "error": result.error,
            },
            llm_calls=usage.llm_calls,
            total_ms=usage.total_ms,
        )
        try:
            self._sink.publish(event)
        except Exception as exc:
            logger.error("Orchestrator: turn event publish failed: %s", exc)
