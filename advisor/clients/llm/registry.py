"""
LLM provider registry: provider id -> builder(config dict) -> BaseLLMClient.

``build_llm_client_from_env`` is what the API calls at startup. Without a
usable key it returns the no-op client and the advisor runs on deterministic
parsing and fixed questions.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from advisor.clients.llm.base import BaseLLMClient
from advisor.clients.llm.config import LLMConfig

logger = logging.getLogger(__name__)

LLMBuilder = Callable[[Dict[str, Any]], BaseLLMClient]


class LLMRegistry:
    def __init__(self) -> None:
        self._builders: Dict[str, LLMBuilder] = {}

    def register(self, provider: str, builder: LLMBuilder) -> None:
        self._builders[provider] = builder

    @property
    def providers(self) -> List[str]:
        return list(self._builders)

    def build(self, provider: str, config: Dict[str, Any]) -> BaseLLMClient:
        """Raises KeyError for an unregistered provider."""
        builder = self._builders.get(provider)
        if builder is None:
            raise KeyError(f"Unknown LLM provider {provider!r} (registered: {', '.join(self._builders)})")
        return builder(config)


default_registry = LLMRegistry()

from advisor.clients.llm.providers.gemini import gemini_builder  # noqa: E402
from advisor.clients.llm.providers.noop import NoOpLLMClient, noop_builder  # noqa: E402
from advisor.clients.llm.providers.openai import openai_builder  # noqa: E402

default_registry.register("openai", openai_builder)
default_registry.register("gemini", gemini_builder)
default_registry.register("noop", noop_builder)


def build_llm_client_from_env(registry: LLMRegistry = default_registry) -> BaseLLMClient:
    config = LLMConfig.from_env()
    if config is None:
        logger.info("LLM: no provider key in env, using no-op client (deterministic prompts only)")
        return NoOpLLMClient()
    try:
        client = registry.build(config.provider or "", config.to_dict())
    except KeyError as exc:
        logger.warning("LLM: %s, using no-op client", exc)
        return NoOpLLMClient()
    logger.info("LLM: using %s (%s)", config.provider, config.model)
    return client
