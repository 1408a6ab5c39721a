"""Unit tests for ConversationService with mocked repositories."""
from __future__ import annotations

import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from advisor.orchestrator.events import TurnEvent
from advisor.services.conversation_service import ConversationService


def _run(coro):
    return asyncio.run(coro)


def _fake_conversation(**kwargs):
    defaults = {
        "id": uuid4(),
        "session_id": "s-1",
        "flow": "standard",
        "stage": "goals",
        "status": "active",
        "contact_email": None,
        "message_count": 0,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _event(**kwargs) -> TurnEvent:
    defaults = dict(
        session_id="s-1",
        flow="standard",
        stage="goals",
        turn_index=2,
        user_message="yes",
        display_spec={"blocks": []},
        assistant_text="What is your main investment objective?",
        goals={"goal_type": "growth"},
        portfolio={},
        llm_calls=1,
        total_ms=12.5,
    )
    defaults.update(kwargs)
    return TurnEvent(**defaults)


def _service(conv=None) -> ConversationService:
    svc = ConversationService(MagicMock())
    svc._conv_repo.upsert_by_session_id = AsyncMock(return_value=conv or _fake_conversation())
    svc._conv_repo.increment_message_count = AsyncMock()
    svc._msg_repo.add_user_message = AsyncMock()
    svc._msg_repo.add_assistant_message = AsyncMock()
    svc._data_repo.upsert_for_conversation = AsyncMock()
    return svc


class TestRecordTurn(unittest.TestCase):
    def test_writes_conversation_messages_and_payloads(self):
        conv = _fake_conversation()
        svc = _service(conv)

        result = _run(svc.record_turn(_event()))

        self.assertIs(result, conv)
        kwargs = svc._conv_repo.upsert_by_session_id.call_args.kwargs
        self.assertEqual(kwargs["stage"], "goals")
        self.assertEqual(kwargs["status"], "active")
        svc._msg_repo.add_user_message.assert_awaited_once_with(conv.id, "yes", stage="goals", turn_index=2)
        assistant = svc._msg_repo.add_assistant_message.call_args
        self.assertEqual(assistant.args[1], "What is your main investment objective?")
        self.assertEqual(assistant.kwargs["llm_calls_count"], 1)
        self.assertEqual(assistant.kwargs["total_ms"], 12.5)
        svc._conv_repo.increment_message_count.assert_awaited_once_with(conv.id, by=2)
        data = svc._data_repo.upsert_for_conversation.call_args.kwargs
        self.assertEqual(data["goals"], {"goal_type": "growth"})
        self.assertIsNone(data["portfolio_data"])

    def test_end_stage_marks_completed(self):
        svc = _service()
        _run(svc.record_turn(_event(stage="end")))
        self.assertEqual(svc._conv_repo.upsert_by_session_id.call_args.kwargs["status"], "completed")

    def test_empty_user_message_records_assistant_only(self):
        conv = _fake_conversation()
        svc = _service(conv)
        _run(svc.record_turn(_event(user_message="")))
        svc._msg_repo.add_user_message.assert_not_awaited()
        svc._msg_repo.add_assistant_message.assert_awaited_once()
        svc._conv_repo.increment_message_count.assert_awaited_once_with(conv.id, by=1)


class TestQueries(unittest.TestCase):
    def test_transcript_for_unknown_session_is_empty(self):
        svc = ConversationService(MagicMock())
        svc._conv_repo.get_by_session_id = AsyncMock(return_value=None)
        svc._msg_repo.list_for_conversation = AsyncMock()

        self.assertEqual(_run(svc.get_transcript("missing")), [])
        svc._msg_repo.list_for_conversation.assert_not_awaited()

    def test_transcript_uses_conversation_id(self):
        conv = _fake_conversation()
        messages = [SimpleNamespace(role="user", content="hi")]
        svc = ConversationService(MagicMock())
        svc._conv_repo.get_by_session_id = AsyncMock(return_value=conv)
        svc._msg_repo.list_for_conversation = AsyncMock(return_value=messages)

        self.assertEqual(_run(svc.get_transcript("s-1", limit=10)), messages)
        svc._msg_repo.list_for_conversation.assert_awaited_once_with(conv.id, limit=10)


if __name__ == "__main__":
    unittest.main()
