"""No-op LLM client when no provider is configured.

Extraction gets an empty object and prompt generation is skipped, so the
orchestrator runs on its deterministic keyword and fallback-question paths.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from advisor.clients.llm.base import BaseLLMClient

_NOOP_MESSAGE = (
    "No language model is configured. Set OPENAI_API_KEY or GEMINI_API_KEY "
    "to enable free-text understanding."
)


class NoOpLLMClient(BaseLLMClient):
    """Placeholder client when no API key is configured."""

    @property
    def provider(self) -> str:
        return "noop"

    async def complete(self, prompt: str, *, model: Optional[str] = None) -> str:
        return _NOOP_MESSAGE

    async def complete_json(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        return "{}"


def noop_builder(config: Dict[str, Any]) -> NoOpLLMClient:
    return NoOpLLMClient()
