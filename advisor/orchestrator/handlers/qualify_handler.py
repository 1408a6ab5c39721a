"""QualifyHandler: asks for consent to start the review."""
from __future__ import annotations

import logging

from advisor.orchestrator.handlers.base import START_ACTION, BaseStageHandler
from advisor.orchestrator.parsing import is_affirmative, is_negative
from advisor.orchestrator.schemas import QualifyExtraction
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome

logger = logging.getLogger(__name__)


class QualifyHandler(BaseStageHandler):
    stages = (Stage.QUALIFY,)

    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        outcome = StageOutcome()
        if is_affirmative(message):
            session.contact.consent = True
        elif is_negative(message):
            outcome.text.append("No problem. Whenever you're ready, just say start.")
            outcome.actions = [START_ACTION]
            return outcome
        else:
            data, calls = await self._extract(session, message, flow, QualifyExtraction)
            outcome.llm_calls += calls
            if data.consent:
                session.contact.consent = True

        if session.contact.consent:
            logger.debug("QualifyHandler: consent given for %s", session.session_id)
            return await self._finish(session, flow, outcome, summary="Great, let's get started.")

        await self._ask(session, flow, outcome)
        outcome.actions = [START_ACTION]
        return outcome
