"""CTAHandler: captures the user's next step (book a call or email the report)."""
from __future__ import annotations

import logging

from advisor.orchestrator.handlers.base import CTA_ACTIONS, BaseStageHandler
from advisor.orchestrator.parsing import cta_signals
from advisor.orchestrator.schemas import CtaExtraction
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome

logger = logging.getLogger(__name__)

_CONFIRMATIONS = {
    "book_call": "An advisor will reach out to schedule a call.",
    "email_report": "Your report is on its way to your inbox.",
}


async def capture_cta_choice(handler: BaseStageHandler, session: Session, message: str, flow: Flow) -> int:
    """Fill ``contact.cta_choice`` from keywords or the extractor. Returns LLM calls made."""
    signals = cta_signals(message)
    calls = 0
    if not signals.get("cta_choice"):
        data, calls = await handler._extract(session, message, flow, CtaExtraction, deterministic=signals)
        choice = data.cta_choice
    else:
        choice = signals["cta_choice"]
    if choice:
        session.contact.cta_choice = choice
        logger.info("CTAHandler: %s chose %s", session.session_id, choice)
    return calls


class CTAHandler(BaseStageHandler):
    stages = (Stage.CTA,)

    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        outcome = StageOutcome()
        outcome.llm_calls += await capture_cta_choice(self, session, message, flow)
        choice = session.contact.cta_choice
        if choice:
            return await self._finish(session, flow, outcome, summary=_CONFIRMATIONS.get(choice))
        await self._ask(session, flow, outcome)
        outcome.actions = list(CTA_ACTIONS)
        return outcome
