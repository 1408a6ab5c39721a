"""PortfolioHandler: current allocation, currency and optional detail.

Branches: the "no investments yet" shortcut completes the stage with an
all-cash allocation; a request for a suggestion synthesizes a default
allocation; an allocation over 100% is rejected with a corrective prompt.
Once the required slots are filled the handler asks one time for holdings or
sectors, unless the user already gave some.
"""
from __future__ import annotations

import logging

from advisor.core.exceptions import ValidationError
from advisor.orchestrator import completion
from advisor.orchestrator.handlers.base import SKIP_ACTION, BaseStageHandler
from advisor.orchestrator.merge import format_allocation, merge_portfolio
from advisor.orchestrator.parsing import is_skip, portfolio_signals
from advisor.orchestrator.prompts import FALLBACK_QUESTIONS
from advisor.orchestrator.response import allocation_table
from advisor.orchestrator.schemas import PortfolioExtraction, validate_partial
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome

logger = logging.getLogger(__name__)


class PortfolioHandler(BaseStageHandler):
    stages = (Stage.PORTFOLIO,)

    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        outcome = StageOutcome()
        portfolio = session.portfolio
        descriptor = flow.descriptor(Stage.PORTFOLIO)
        cfg = self._ctx.config

        required_done = completion.is_complete(Stage.PORTFOLIO, session, flow, self.tolerance)
        if required_done and portfolio.optional_offered and is_skip(message):
            return await self._finish(session, flow, outcome)

        signals = portfolio_signals(message)
        if signals.get("no_holdings_yet") or self._resolves_required(signals):
            data = validate_partial(PortfolioExtraction, signals)
        else:
            data, calls = await self._extract(
                session, message, flow, PortfolioExtraction, deterministic=signals,
            )
            outcome.llm_calls += calls

        try:
            updated = merge_portfolio(
                session,
                data,
                tolerance=self.tolerance,
                default_currency=cfg.default_currency,
                max_holdings=cfg.max_holdings,
            )
        except ValidationError as exc:
            logger.info("PortfolioHandler: rejected input: %s", exc.details)
            outcome.validation_error = exc.message
            outcome.text.append(exc.message)
            slot = exc.details.get("slot", "allocation")
            outcome.text.append(FALLBACK_QUESTIONS.get(slot, FALLBACK_QUESTIONS["allocation"]))
            return outcome

        if "new_investor" in updated:
            logger.info("PortfolioHandler: new investor shortcut for %s", session.session_id)
            return await self._finish(
                session, flow, outcome,
                summary="No problem, we'll treat your portfolio as fully in cash for now.",
            )

        if not completion.is_complete(Stage.PORTFOLIO, session, flow, self.tolerance):
            if portfolio.allocation and "allocation" in updated:
                outcome.table = allocation_table(portfolio.allocation, title="Allocation so far")
            return await self._finish(session, flow, outcome)

        outcome.table = allocation_table(portfolio.allocation)
        summary = f"Got it: {format_allocation(portfolio.allocation)} in {portfolio.currency}."
        optional_missing = completion.unfilled_optional(Stage.PORTFOLIO, session, flow, self.tolerance)
        if (
            descriptor.offer_optional_once
            and not portfolio.optional_offered
            and len(optional_missing) == len(descriptor.optional)
        ):
            portfolio.optional_offered = True
            completion.refresh_slots(session, flow, self.tolerance)
            outcome.text.extend([summary, FALLBACK_QUESTIONS["optional_details"]])
            outcome.actions = [SKIP_ACTION]
            return outcome

        return await self._finish(session, flow, outcome, summary=summary if updated else None)

    def _resolves_required(self, signals: dict) -> bool:
        """Deterministic parsing alone already yields a complete allocation and a currency."""
        allocation = signals.get("allocation") or {}
        return bool(signals.get("currency")) and completion.allocation_is_complete(allocation, self.tolerance)
