"""Provider-neutral async LLM interface used by slot extraction and prompt phrasing."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class BaseLLMClient(ABC):
    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider id ("openai", "gemini", "noop")."""

    @abstractmethod
    async def complete(self, prompt: str, *, model: Optional[str] = None) -> str:
        ...

    async def complete_json(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Ask for a single JSON object as the whole reply.

        Default implementation calls ``complete()`` and relies on the prompt.
        Override in providers with a native JSON response mode.
        """
        return await self.complete(prompt, model=model)
