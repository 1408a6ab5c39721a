"""OpenAI LLM provider: BaseLLMClient implementation + registry builder."""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError

from advisor.clients.llm.base import BaseLLMClient
from advisor.core.exceptions import ExternalServiceError


class OpenAILLMClient(BaseLLMClient):
    """OpenAI-compatible chat completions client (gpt-4o-mini by default)."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: Optional[int] = None,
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = AsyncOpenAI(
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
        )

    @property
    def provider(self) -> str:
        return "openai"

    async def _create(self, prompt: str, model: Optional[str], **extra: Any) -> str:
        kwargs: Dict[str, Any] = {
            "model": model or self._model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._temperature,
        }
        if self._max_tokens is not None:
            kwargs["max_tokens"] = self._max_tokens
        kwargs.update({k: v for k, v in extra.items() if v is not None})
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            raise ExternalServiceError(
                f"OpenAI request failed: {exc}", details={"model": kwargs["model"]}, cause=exc,
            ) from exc
        return response.choices[0].message.content or ""

    async def complete(self, prompt: str, *, model: Optional[str] = None) -> str:
        return await self._create(prompt, model)

    async def complete_json(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Native JSON mode: the reply is a single JSON object."""
        return await self._create(
            prompt, model, response_format={"type": "json_object"}, max_tokens=max_tokens,
        )


def openai_builder(config: Dict[str, Any]) -> OpenAILLMClient:
    return OpenAILLMClient(
        model=config.get("model", "gpt-4o-mini"),
        api_key=config.get("api_key"),
        base_url=config.get("base_url"),
        temperature=float(config.get("temperature", 0.1)),
        max_tokens=config.get("max_tokens"),
        timeout=float(config.get("timeout", 60.0)),
    )
