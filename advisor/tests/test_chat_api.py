"""HTTP-level tests for the chat router with a no-op LLM orchestrator."""
from __future__ import annotations

import json
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from advisor.clients.llm.providers.noop import NoOpLLMClient
from advisor.orchestrator.orchestrator import Orchestrator
from advisor.orchestrator.types import OrchestratorConfig


def _make_test_app(*, with_orchestrator: bool = True, session_factory=None) -> FastAPI:
    """Minimal app with the chat router mounted and app.state filled in."""
    from advisor.api.main import project_error_handler
    from advisor.api.routers import chat
    from advisor.core.exceptions import ProjectError

    app = FastAPI()
    app.state.limiter = chat.limiter
    app.state.orchestrator = Orchestrator(NoOpLLMClient(), OrchestratorConfig()) if with_orchestrator else None
    app.state.session_factory = session_factory
    app.add_exception_handler(ProjectError, project_error_handler)
    app.include_router(chat.router, prefix="/api/v1")
    return app


class TestChatEndpoint(unittest.TestCase):
    def test_first_message_returns_display_spec(self):
        with TestClient(_make_test_app(), raise_server_exceptions=False) as client:
            resp = client.post("/api/v1/chat", json={"message": "hello"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(set(body), {"displaySpec", "session", "usage"})
        self.assertEqual(body["session"]["stage"], "qualify")
        for block in body["displaySpec"]["blocks"]:
            json.loads(block["content"])

    def test_session_id_is_carried_between_turns(self):
        with TestClient(_make_test_app(), raise_server_exceptions=False) as client:
            first = client.post("/api/v1/chat", json={"message": "hello"}).json()
            sid = first["session"]["id"]
            second = client.post("/api/v1/chat", json={"message": "yes", "session_id": sid}).json()
        self.assertEqual(second["session"]["id"], sid)
        self.assertEqual(second["session"]["stage"], "goals")

    def test_empty_message_is_rejected(self):
        with TestClient(_make_test_app(), raise_server_exceptions=False) as client:
            resp = client.post("/api/v1/chat", json={"message": ""})
        self.assertEqual(resp.status_code, 422)

    def test_missing_orchestrator_is_503(self):
        with TestClient(_make_test_app(with_orchestrator=False), raise_server_exceptions=False) as client:
            resp = client.post("/api/v1/chat", json={"message": "hello"})
        self.assertEqual(resp.status_code, 503)


class TestSessionEndpoints(unittest.TestCase):
    def test_clear_existing_session(self):
        with TestClient(_make_test_app(), raise_server_exceptions=False) as client:
            client.post("/api/v1/chat", json={"message": "hello", "session_id": "abc"})
            resp = client.delete("/api/v1/chat/sessions/abc")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"session_id": "abc", "cleared": True})

    def test_clear_unknown_session_is_404(self):
        with TestClient(_make_test_app(), raise_server_exceptions=False) as client:
            resp = client.delete("/api/v1/chat/sessions/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "SESSION_NOT_FOUND")

    def test_transcript_without_persistence_is_503(self):
        with TestClient(_make_test_app(), raise_server_exceptions=False) as client:
            resp = client.get("/api/v1/chat/sessions/abc/messages")
        self.assertEqual(resp.status_code, 503)

    def test_transcript_reads_persisted_messages(self):
        db = MagicMock()
        db.commit = AsyncMock()
        db.rollback = AsyncMock()
        factory = MagicMock()
        factory.return_value.__aenter__ = AsyncMock(return_value=db)
        factory.return_value.__aexit__ = AsyncMock(return_value=False)
        messages = [
            SimpleNamespace(role="user", content="hello", stage="qualify", turn_index=1,
                            created_at="2026-01-01T00:00:00Z"),
            SimpleNamespace(role="assistant", content="Shall we start?", stage="qualify", turn_index=1,
                            created_at="2026-01-01T00:00:01Z"),
        ]
        with patch(
            "advisor.api.routers.chat.ConversationService.get_transcript",
            new=AsyncMock(return_value=messages),
        ):
            with TestClient(_make_test_app(session_factory=factory), raise_server_exceptions=False) as client:
                resp = client.get("/api/v1/chat/sessions/abc/messages")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["session_id"], "abc")
        self.assertEqual([m["role"] for m in body["messages"]], ["user", "assistant"])


if __name__ == "__main__":
    unittest.main()
