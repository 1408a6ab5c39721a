"""Tests for LLM client resolution from env and provider error wrapping."""
from __future__ import annotations

import asyncio
import os
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from openai import OpenAIError

from advisor.clients.llm import LLMConfig, build_llm_client_from_env, default_registry
from advisor.clients.llm.providers.noop import NoOpLLMClient
from advisor.clients.llm.providers.openai import OpenAILLMClient
from advisor.core.exceptions import ExternalServiceError


class TestEnvResolution(unittest.TestCase):
    def test_no_key_gives_noop(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertIsNone(LLMConfig.from_env())
            self.assertIsInstance(build_llm_client_from_env(), NoOpLLMClient)

    def test_openai_key_selects_openai(self):
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test", "LLM_MODEL": "gpt-4o"}, clear=True):
            cfg = LLMConfig.from_env()
            client = build_llm_client_from_env()
        self.assertEqual(cfg.provider, "openai")
        self.assertEqual(cfg.model, "gpt-4o")
        self.assertEqual(client.provider, "openai")

    def test_unknown_provider_falls_back_to_noop(self):
        env = {"LLM_PROVIDER": "mystery", "GEMINI_API_KEY": "g-test"}
        with patch.dict(os.environ, env, clear=True):
            self.assertIsInstance(build_llm_client_from_env(), NoOpLLMClient)

    def test_registry_lists_builtin_providers(self):
        self.assertEqual(set(default_registry.providers), {"openai", "gemini", "noop"})


class TestOpenAIClient(unittest.TestCase):
    def _client(self, create: AsyncMock) -> OpenAILLMClient:
        client = OpenAILLMClient(api_key="sk-test")
        client._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        return client

    def test_json_mode_request(self):
        reply = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))])
        create = AsyncMock(return_value=reply)
        text = asyncio.run(self._client(create).complete_json("extract", max_tokens=300))
        self.assertEqual(text, '{"a": 1}')
        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["response_format"], {"type": "json_object"})
        self.assertEqual(kwargs["max_tokens"], 300)
        self.assertEqual(kwargs["model"], "gpt-4o-mini")

    def test_sdk_error_is_wrapped(self):
        create = AsyncMock(side_effect=OpenAIError("quota exceeded"))
        with self.assertRaises(ExternalServiceError) as ctx:
            asyncio.run(self._client(create).complete("hi"))
        self.assertEqual(ctx.exception.code, "EXTERNAL_SERVICE_ERROR")
        self.assertIn("quota exceeded", ctx.exception.message)


if __name__ == "__main__":
    unittest.main()
