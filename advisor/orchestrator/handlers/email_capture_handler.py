"""EmailCaptureHandler: collects the address the report is sent to."""
from __future__ import annotations

import logging
from typing import Optional

from advisor.orchestrator.completion import is_valid_email
from advisor.orchestrator.handlers.base import BaseStageHandler
from advisor.orchestrator.parsing import find_email, find_emailish
from advisor.orchestrator.prompts import FALLBACK_QUESTIONS
from advisor.orchestrator.schemas import ContactExtraction
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome

logger = logging.getLogger(__name__)


class EmailCaptureHandler(BaseStageHandler):
    stages = (Stage.EMAIL_CAPTURE,)

    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        outcome = StageOutcome()
        candidate: Optional[str] = find_email(message)
        if candidate is None:
            data, calls = await self._extract(session, message, flow, ContactExtraction)
            outcome.llm_calls += calls
            candidate = data.email or find_emailish(message)

        if candidate and not is_valid_email(candidate):
            logger.info("EmailCaptureHandler: invalid address %r", candidate)
            outcome.validation_error = f"'{candidate}' doesn't look like a valid email address."
            outcome.text.extend([
                outcome.validation_error,
                "Please enter it in the form name@example.com.",
            ])
            return outcome

        if candidate:
            session.contact.email = candidate.lower()
            return await self._finish(
                session, flow, outcome, summary=f"Thanks, I'll send the report to {session.contact.email}.",
            )
        outcome.text.append(FALLBACK_QUESTIONS["email"])
        return outcome
