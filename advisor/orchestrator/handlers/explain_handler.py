"""ExplainHandler: presents the analysis.

In the standard flow the explanation is shown and the conversation moves on
to the CTA stage. When explain carries the ``cta_choice`` slot (simplified
flow) the next-step buttons are shown here and the choice is captured.
"""
from __future__ import annotations

from typing import Any, Dict, List

from advisor.orchestrator import completion
from advisor.orchestrator.handlers.base import CTA_ACTIONS, BaseStageHandler
from advisor.orchestrator.handlers.cta_handler import capture_cta_choice
from advisor.orchestrator.merge import format_percent
from advisor.orchestrator.prompts import FALLBACK_QUESTIONS
from advisor.orchestrator.response import comparison_table
from advisor.orchestrator.stages import Flow
from advisor.orchestrator.types import Session, Stage, StageOutcome

_ALIGNMENT_TEXT = {
    "aligned": "Your portfolio is well aligned with your goals.",
    "moderate_drift": "Your portfolio is somewhat off from what your goals suggest.",
    "misaligned": "Your portfolio differs significantly from what your goals suggest.",
}


def explanation_lines(analysis: Dict[str, Any]) -> List[str]:
    lines = [_ALIGNMENT_TEXT.get(analysis.get("alignment", ""), "Here is your portfolio analysis.")]
    if analysis.get("expected_return") is not None:
        lines.append(
            f"Expected annual return of your current mix: about {format_percent(analysis['expected_return'])}."
        )
    lines.extend(analysis.get("notes") or [])
    return lines


class ExplainHandler(BaseStageHandler):
    stages = (Stage.EXPLAIN,)

    async def handle(self, session: Session, message: str, *, flow: Flow) -> StageOutcome:
        outcome = StageOutcome()
        takes_choice = "cta_choice" in flow.descriptor(Stage.EXPLAIN).required

        if takes_choice and session.contact.cta_choice is None:
            calls = await capture_cta_choice(self, session, message, flow)
            outcome.llm_calls += calls
            if completion.is_complete(Stage.EXPLAIN, session, flow, self.tolerance):
                return await self._finish(session, flow, outcome)

        analysis = session.analysis_result or {}
        outcome.text.extend(explanation_lines(analysis))
        if analysis:
            outcome.table = comparison_table(analysis)

        if takes_choice:
            outcome.text.append(FALLBACK_QUESTIONS["cta_choice"])
            outcome.actions = list(CTA_ACTIONS)
            return outcome
        return await self._finish(session, flow, outcome)
