"""Google Gemini LLM provider: BaseLLMClient implementation + registry builder."""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from advisor.clients.llm.base import BaseLLMClient
from advisor.core.exceptions import ExternalServiceError


class GeminiLLMClient(BaseLLMClient):
    """Google Gemini client (gemini-2.0-flash by default)."""

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        *,
        api_key: Optional[str] = None,
        temperature: float = 0.1,
    ) -> None:
        self._model = model
        self._temperature = temperature
        resolved_key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        self._client = genai.Client(api_key=resolved_key)

    @property
    def provider(self) -> str:
        return "gemini"

    async def _generate(self, prompt: str, model: Optional[str], **config: Any) -> str:
        name = model or self._model
        try:
            response = await self._client.aio.models.generate_content(
                model=name,
                contents=prompt,
                config=genai_types.GenerateContentConfig(temperature=self._temperature, **config),
            )
        except genai_errors.APIError as exc:
            raise ExternalServiceError(
                f"Gemini request failed: {exc}", details={"model": name}, cause=exc,
            ) from exc
        return response.text or ""

    async def complete(self, prompt: str, *, model: Optional[str] = None) -> str:
        return await self._generate(prompt, model)

    async def complete_json(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """JSON MIME response mode."""
        config: Dict[str, Any] = {"response_mime_type": "application/json"}
        if max_tokens is not None:
            config["max_output_tokens"] = max_tokens
        return await self._generate(prompt, model, **config)


def gemini_builder(config: Dict[str, Any]) -> GeminiLLMClient:
    return GeminiLLMClient(
        model=config.get("model", "gemini-2.0-flash"),
        api_key=config.get("api_key"),
        temperature=float(config.get("temperature", 0.1)),
    )
