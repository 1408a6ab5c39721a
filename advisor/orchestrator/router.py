"""StageRouter: fixed Stage -> handler table."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from advisor.core.exceptions import UnknownStageError
from advisor.orchestrator.handlers.analyze_handler import AnalyzeHandler
from advisor.orchestrator.handlers.base import BaseStageHandler, HandlerContext
from advisor.orchestrator.handlers.cta_handler import CTAHandler
from advisor.orchestrator.handlers.email_capture_handler import EmailCaptureHandler
from advisor.orchestrator.handlers.end_handler import EndHandler
from advisor.orchestrator.handlers.explain_handler import ExplainHandler
from advisor.orchestrator.handlers.goals_handler import GoalsHandler
from advisor.orchestrator.handlers.portfolio_handler import PortfolioHandler
from advisor.orchestrator.handlers.qualify_handler import QualifyHandler
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome

logger = logging.getLogger(__name__)


class StageRouter:
    def __init__(self, handlers: Optional[Dict[Stage, BaseStageHandler]] = None) -> None:
        self._handlers: Dict[Stage, BaseStageHandler] = dict(handlers or {})

    def register(self, handler: BaseStageHandler, stages: Optional[Iterable[Stage]] = None) -> None:
        for stage in stages or handler.stages:
            self._handlers[Stage(stage)] = handler

    def handler_for(self, stage: Stage) -> BaseStageHandler:
        handler = self._handlers.get(stage)
        if handler is None:
            raise UnknownStageError(
                f"No handler registered for stage {getattr(stage, 'value', stage)!r}",
                details={"stage": str(getattr(stage, "value", stage))},
            )
        return handler

    @property
    def stages(self) -> list:
        return list(self._handlers)

    async def route(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        flow.descriptor(session.stage)
        handler = self.handler_for(session.stage)
        logger.debug("StageRouter: %s -> %s", session.stage.value, type(handler).__name__)
        return await handler.handle(session, message, flow=flow)


def build_default_router(ctx: HandlerContext) -> StageRouter:
    router = StageRouter()
    for handler_cls in (
        QualifyHandler,
        GoalsHandler,
        PortfolioHandler,
        EmailCaptureHandler,
        AnalyzeHandler,
        ExplainHandler,
        CTAHandler,
        EndHandler,
    ):
        router.register(handler_cls(ctx))
    return router
