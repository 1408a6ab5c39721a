"""Follow-up questions: deterministic text for every slot, optional LLM phrasing."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Tuple

from advisor.orchestrator.completion import ALLOCATION_TOLERANCE, allocation_total
from advisor.orchestrator.merge import format_allocation
from advisor.orchestrator.session_rules import working_header
from advisor.orchestrator.stages import Flow, slot_label
from advisor.orchestrator.types import Session

if TYPE_CHECKING:
    from advisor.clients.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)

FALLBACK_QUESTIONS = {
    "consent": "I can review your portfolio against your goals in a few quick steps. Shall we start?",
    "goal_type": "What is your main investment objective?",
    "target_amount": "What is your target investment amount?",
    "horizon_years": "What is your investment time horizon in years?",
    "risk_tolerance": "What is your risk tolerance: low, medium, or high?",
    "liquidity_need": "What are your liquidity needs: low, medium, or high?",
    "allocation": (
        "How is your portfolio currently allocated? For example: 60% stocks, 30% bonds, 10% cash. "
        "If you haven't invested yet, just say so, or ask me to suggest an allocation."
    ),
    "currency": "Which currency is your portfolio held in (for example USD, EUR or GBP)?",
    "optional_details": (
        "Optionally, you can share your top holdings or sector breakdown "
        "(for example: Apple 10%, Microsoft 8%). Or say skip to continue."
    ),
    "email": "What email address should we send your portfolio report to?",
    "analysis_result": "I have everything I need. Ready for me to analyze your portfolio?",
    "cta_choice": "Would you like to book a call with an advisor or receive the report by email?",
}

_PROMPT_TEMPLATE = """You are a friendly portfolio review assistant.

{header}

Rewrite the following question so it sounds natural and conversational.
Keep it to one or two sentences, keep every option it mentions, and do not
add new questions or give investment advice.

Question: {question}
"""


def fallback_question(
    slot: str,
    session: Session,
    tolerance: float = ALLOCATION_TOLERANCE,
) -> str:
    """Deterministic question for *slot*, aware of partial allocations."""
    if slot == "allocation" and session.portfolio.allocation:
        total = allocation_total(session.portfolio.allocation)
        if total < 100.0 - tolerance:
            return (
                f"You have {total:g}% allocated ({format_allocation(session.portfolio.allocation)}). "
                f"Please specify the remaining {100.0 - total:g}%."
            )
    return FALLBACK_QUESTIONS.get(slot, f"Could you tell me your {slot_label(slot).lower()}?")


class PromptWriter:
    """Produces the question for the next missing slot.

    With ``enabled`` and a real LLM the deterministic question is rephrased in
    context; any failure or timeout returns the deterministic text unchanged.
    """

    def __init__(
        self,
        llm: Optional["BaseLLMClient"] = None,
        *,
        timeout_seconds: Optional[float] = 15.0,
        enabled: bool = True,
        model: Optional[str] = None,
        tolerance: float = ALLOCATION_TOLERANCE,
    ) -> None:
        self._llm = llm
        self._timeout_seconds = timeout_seconds
        self._enabled = enabled
        self._model = model
        self._tolerance = tolerance

    @property
    def uses_llm(self) -> bool:
        return self._enabled and self._llm is not None and self._llm.provider != "noop"

    async def question_for(self, slot: str, session: Session, flow: Flow) -> Tuple[str, bool]:
        """Return ``(text, llm_called)`` for *slot*."""
        question = fallback_question(slot, session, self._tolerance)
        if not self.uses_llm:
            return question, False

        prompt = _PROMPT_TEMPLATE.format(header=working_header(session, flow), question=question)
        try:
            coro = self._llm.complete(prompt, model=self._model)
            if self._timeout_seconds is not None and self._timeout_seconds > 0:
                coro = asyncio.wait_for(coro, timeout=self._timeout_seconds)
            text = (await coro or "").strip()
        except asyncio.TimeoutError:
            logger.warning("PromptWriter: LLM call timed out (%.0fs)", self._timeout_seconds or 0)
            return question, True
        except Exception as exc:
            logger.error("PromptWriter: LLM call failed: %s", exc)
            return question, True

        if not text:
            return question, True
        return text.strip('"'), True
