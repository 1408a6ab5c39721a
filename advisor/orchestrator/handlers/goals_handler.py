"""GoalsHandler: investment goals (five slots) or the simplified amount/timeline stage.

The required slots come from the flow's stage descriptor, so one handler
serves both variants.
"""
from __future__ import annotations

import logging

from advisor.orchestrator.handlers.base import BaseStageHandler
from advisor.orchestrator.merge import merge_goals
from advisor.orchestrator.parsing import goals_signals
from advisor.orchestrator.schemas import GoalsExtraction
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome

logger = logging.getLogger(__name__)


class GoalsHandler(BaseStageHandler):
    stages = (Stage.GOALS, Stage.AMOUNT_TIMELINE)

    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        outcome = StageOutcome()
        data, calls = await self._extract(
            session, message, flow, GoalsExtraction, deterministic=goals_signals(message),
        )
        outcome.llm_calls += calls
        updated = merge_goals(session.goals, data)
        if updated:
            logger.debug("GoalsHandler: updated %s", updated)
        return await self._finish(
            session, flow, outcome, summary="Thanks, I have your investment goals.",
        )
