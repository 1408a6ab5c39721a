"""
LLM clients: base interface, env config and provider registry.

Provider registration: default_registry.register(provider, builder).
Env-based resolution: build_llm_client_from_env() (no-op client without a key).
"""
from advisor.clients.llm.base import BaseLLMClient
from advisor.clients.llm.config import LLMConfig
from advisor.clients.llm.registry import LLMRegistry, build_llm_client_from_env, default_registry

__all__ = [
    "BaseLLMClient",
    "LLMConfig",
    "LLMRegistry",
    "build_llm_client_from_env",
    "default_registry",
]
