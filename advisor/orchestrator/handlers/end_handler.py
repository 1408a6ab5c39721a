"""EndHandler: terminal stage; the only way forward is a restart."""
from __future__ import annotations

from advisor.orchestrator.handlers.base import RESTART_ACTION, BaseStageHandler
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome


class EndHandler(BaseStageHandler):
    stages = (Stage.END,)

    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        return StageOutcome(
            text=["Your portfolio review is complete. Say restart to begin a new analysis."],
            actions=[RESTART_ACTION],
        )
