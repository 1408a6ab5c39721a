"""AnalyzeHandler: runs the portfolio analyzer and stores its result."""
from __future__ import annotations

import logging

from advisor.orchestrator.handlers.base import BaseStageHandler
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome

logger = logging.getLogger(__name__)


class AnalyzeHandler(BaseStageHandler):
    stages = (Stage.ANALYZE,)

    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        outcome = StageOutcome()
        if not session.analysis_result:
            session.analysis_result = self._ctx.analyzer.analyze(session.goals, session.portfolio)
            logger.info(
                "AnalyzeHandler: %s -> %s",
                session.session_id,
                session.analysis_result.get("alignment"),
            )
        return await self._finish(session, flow, outcome)
