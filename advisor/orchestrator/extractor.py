"""
Slot extractor: free text + stage schema -> validated partial extraction.

Stateless per call. Every failure mode (timeout, transport error, non-JSON
output, schema mismatch) degrades to an empty extraction; nothing raises to
the caller.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from advisor.core.exceptions import ExtractionError
from advisor.orchestrator.schemas import ExtractionModel, validate_partial

if TYPE_CHECKING:
    from advisor.clients.llm.base import BaseLLMClient

logger = logging.getLogger(__name__)

_EXTRACTION_PROMPT = """You extract structured data from a user's message in a portfolio review conversation.

{header}

Return ONLY a JSON object with any of these fields you can find:
{schema}

Fields still needed: {missing}

Examples:
{examples}

Rules:
- Omit fields the message does not mention. Never guess.
- Numbers are raw numbers without currency symbols, commas or percent signs.
- If nothing relevant is present, return {{}}.

User message: "{message}"
"""


@dataclass
class ExtractionOutcome:
    data: ExtractionModel
    llm_called: bool = False
    error: Optional[str] = None


class SlotExtractor:
    """Calls the LLM in JSON mode and validates the reply against a stage schema."""

    def __init__(
        self,
        llm: "BaseLLMClient",
        *,
        timeout_seconds: Optional[float] = 15.0,
        model: Optional[str] = None,
        max_tokens: Optional[int] = 300,
    ) -> None:
        self._llm = llm
        self._timeout_seconds = timeout_seconds
        self._model = model
        self._max_tokens = max_tokens

    @property
    def enabled(self) -> bool:
        return self._llm.provider != "noop"

    async def extract(
        self,
        message: str,
        schema: Type[ExtractionModel],
        *,
        missing_slots: Optional[List[str]] = None,
        context: str = "",
    ) -> ExtractionOutcome:
        if not self.enabled or not message.strip():
            return ExtractionOutcome(data=schema())

        prompt = _EXTRACTION_PROMPT.format(
            header=context or "",
            schema=schema.prompt_schema,
            missing=", ".join(missing_slots or []) or "none",
            examples=schema.prompt_examples or "-",
            message=message.replace('"', "'"),
        )
        try:
            raw = await self._call(prompt)
            parsed = self._parse_json(raw)
            if parsed is None:
                raise ExtractionError("Extractor returned no JSON object", details={"raw": raw[:200]})
        except asyncio.TimeoutError:
            logger.warning("SlotExtractor: LLM call timed out (%.0fs)", self._timeout_seconds or 0)
            return ExtractionOutcome(data=schema(), llm_called=True, error="timeout")
        except ExtractionError as exc:
            logger.warning("SlotExtractor: %s", exc)
            return ExtractionOutcome(data=schema(), llm_called=True, error=exc.code)
        except Exception as exc:
            logger.error("SlotExtractor: LLM call failed: %s", exc)
            return ExtractionOutcome(data=schema(), llm_called=True, error=str(exc))

        data = validate_partial(schema, parsed)
        logger.debug("SlotExtractor: %s -> %s", schema.__name__, data.fields_set())
        return ExtractionOutcome(data=data, llm_called=True)

    async def _call(self, prompt: str) -> str:
        coro = self._llm.complete_json(prompt, model=self._model, max_tokens=self._max_tokens)
        if self._timeout_seconds is not None and self._timeout_seconds > 0:
            coro = asyncio.wait_for(coro, timeout=self._timeout_seconds)
        return await coro

    @staticmethod
    def _parse_json(raw: Optional[str]) -> Optional[Dict[str, Any]]:
        """Parse a JSON object, tolerating markdown fences and CoT tags."""
        if not raw:
            return None
        text = raw.strip()
        text = re.sub(r"<thinking>.*?</thinking>", "", text, flags=re.DOTALL).strip()
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
        text = text.strip()
        if text.lower() in ("null", "none", ""):
            return None
        try:
            parsed = json.loads(text)
            if isinstance(parsed, dict):
                return {k: v for k, v in parsed.items() if v is not None}
        except json.JSONDecodeError:
            pass
        match = re.search(r"\{.*\}", text, re.DOTALL)
        if match:
            try:
                parsed = json.loads(match.group(0))
                if isinstance(parsed, dict):
                    return {k: v for k, v in parsed.items() if v is not None}
            except json.JSONDecodeError:
                pass
        logger.warning("SlotExtractor: could not parse JSON from: %s", text[:200])
        return None
