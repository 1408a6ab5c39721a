"""LLM provider implementations. Registered on ``advisor.clients.llm.registry`` import."""
from advisor.clients.llm.providers.gemini import GeminiLLMClient, gemini_builder
from advisor.clients.llm.providers.noop import NoOpLLMClient, noop_builder
from advisor.clients.llm.providers.openai import OpenAILLMClient, openai_builder

__all__ = [
    "GeminiLLMClient",
    "NoOpLLMClient",
    "OpenAILLMClient",
    "gemini_builder",
    "noop_builder",
    "openai_builder",
]
