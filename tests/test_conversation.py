"""Tests for companion.services.conversation: the turn flow end to end."""

import dataclasses
from unittest.mock import patch

import pytest
from sqlalchemy import select

from companion.core.context import RequestContext
from companion.core.exceptions import (
    GenerationError,
    InsufficientCredits,
    InternalError,
    NotFoundOrUnauthorized,
    RateLimitExceeded,
    Unauthenticated,
    ValidationError,
)
from companion.database.models import (
    Chat,
    CreditTransaction,
    CreditTransactionType,
    Message,
    MessageRole,
    NsfwTendency,
)
from companion.llm.prompts import DYNAMIC_SLOT_MARKER
from companion.services.conversation import ConversationEngine

from tests.conftest import make_character, make_user


def _messages(db, chat_id: str):
    with db.get_session() as s:
        stmt = select(Message).where(Message.chat_id == chat_id).order_by(Message.id)
        return list(s.execute(stmt).scalars())


def _chat(db, chat_id: str) -> Chat:
    with db.get_session() as s:
        return s.get(Chat, chat_id)


def _usage_entries(db, user_id: str):
    with db.get_session() as s:
        stmt = select(CreditTransaction).where(
            CreditTransaction.user_id == user_id,
            CreditTransaction.type == CreditTransactionType.CHAT_USAGE,
        )
        return list(s.execute(stmt).scalars())


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestSuccessfulTurn:
    def test_structured_reply(self, engine, llm, context, chat) -> None:
        llm.turn_replies = ['{"reply": "Sit by the fire.", "userCharacterMemory": "Is cold"}']
        result = engine.send_turn(context, chat.id, "I'm freezing")
        assert result.reply_text == "Sit by the fire."
        assert result.memory_fact == "Is cold"

    def test_persists_both_messages(self, engine, llm, db, context, chat) -> None:
        engine.send_turn(context, chat.id, "  Hello there  ")
        messages = _messages(db, chat.id)
        assert [(m.role, m.content) for m in messages[1:]] == [
            (MessageRole.USER, "Hello there"),
            (MessageRole.ASSISTANT, "Well met again."),
        ]

    def test_debits_cost_with_ledger_entry(self, engine, llm, ledger, db, user, context, chat) -> None:
        llm.token_count = 1500
        engine.send_turn(context, chat.id, "Hello")

        assert ledger.balance(user.id) == 98
        entries = _usage_entries(db, user.id)
        assert [e.amount for e in entries] == [-2]
        assistant = _messages(db, chat.id)[-1]
        assert entries[0].message_id == assistant.id
        assert ledger.verify(user.id) is True

    def test_ledger_replay_holds_over_many_turns(self, engine, ledger, user, context, chat) -> None:
        for i in range(5):
            engine.send_turn(context, chat.id, f"message {i}")
        assert ledger.balance(user.id) == 95
        assert ledger.verify(user.id) is True

    def test_updates_chat_activity_and_instruction(self, engine, store, db, user, character, context, chat) -> None:
        store.add(user.id, character.id, "Likes tea")
        engine.send_turn(context, chat.id, "Hello")
        stored = _chat(db, chat.id)
        assert stored.last_message_at >= chat.last_message_at
        assert "- Facts: Likes tea" in stored.system_instruction
        assert DYNAMIC_SLOT_MARKER not in stored.system_instruction

    def test_memory_fact_merged_in_background(self, engine, llm, store, user, character, context, chat) -> None:
        llm.turn_replies = ['{"reply": "Oh?", "userCharacterMemory": "Has a cat named Bramble"}']
        engine.send_turn(context, chat.id, "My cat Bramble says hi")
        assert store.list(user.id, character.id) == ["Has a cat named Bramble"]

    def test_plain_text_reply_used_verbatim(self, engine, llm, store, user, character, context, chat) -> None:
        llm.turn_replies = ["Just plain words, no JSON at all."]
        result = engine.send_turn(context, chat.id, "Hello")
        assert result.reply_text == "Just plain words, no JSON at all."
        assert result.memory_fact is None
        assert store.list(user.id, character.id) == []

    def test_fallback_estimate_when_tokenizer_fails(self, engine, llm, ledger, user, context, chat) -> None:
        llm.token_count = RuntimeError("tokenizer offline")
        engine.send_turn(context, chat.id, "Hello")
        assert ledger.balance(user.id) == 99


# ---------------------------------------------------------------------------
# Request sent to the backend
# ---------------------------------------------------------------------------

class TestBackendRequest:
    def test_history_is_chronological_and_excludes_new_message(self, engine, llm, context, chat) -> None:
        engine.send_turn(context, chat.id, "first")
        engine.send_turn(context, chat.id, "second")
        call = llm.turn_calls[-1]
        assert call["message"] == "second"
        assert [h["text"] for h in call["history"]] == ["Well met, traveler.", "first", "Well met again."]
        assert [h["role"] for h in call["history"]] == ["ASSISTANT", "USER", "ASSISTANT"]

    def test_history_window(self, db, llm, tasks, settings, context, chat) -> None:
        engine = ConversationEngine(db, llm, tasks=tasks, settings=dataclasses.replace(settings, history_window=4))
        for i in range(4):
            engine.send_turn(context, chat.id, f"message {i}")
        history = llm.turn_calls[-1]["history"]
        assert len(history) == 4
        assert history[-1]["text"] == "Well met again."

    def test_passes_character_tendency(self, engine, llm, db, ledger, lifecycle) -> None:
        spicy = make_character(db, nsfw=NsfwTendency.HIGH, name="Vex")
        owner = make_user(db, ledger)
        ctx = RequestContext(owner.id)
        chat = lifecycle.create(ctx, spicy.id)
        engine.send_turn(ctx, chat.id, "Hello")
        assert llm.turn_calls[0]["nsfw_tendency"] == NsfwTendency.HIGH

    def test_instruction_uses_other_chat_summary(self, engine, llm, db, lifecycle, context, character) -> None:
        older = lifecycle.create(context, character.id)
        with db.get_session() as s:
            s.get(Chat, older.id).memory_summary = "They argued about the rent."
        newer = lifecycle.create(context, character.id)

        engine.send_turn(context, newer.id, "Hello again")
        assert "- Summary: They argued about the rent." in llm.turn_calls[0]["system_instruction"]

    def test_own_summary_wins(self, engine, llm, db, lifecycle, context, character) -> None:
        older = lifecycle.create(context, character.id)
        newer = lifecycle.create(context, character.id)
        with db.get_session() as s:
            s.get(Chat, older.id).memory_summary = "Old chat summary."
            s.get(Chat, newer.id).memory_summary = "This chat summary."

        engine.send_turn(context, newer.id, "Hello")
        instruction = llm.turn_calls[0]["system_instruction"]
        assert "This chat summary." in instruction
        assert "Old chat summary." not in instruction


# ---------------------------------------------------------------------------
# Admission control
# ---------------------------------------------------------------------------

class TestAdmissionControl:
    def test_refused_before_generation_with_zero_writes(self, engine, llm, ledger, db, user, context, chat) -> None:
        llm.token_count = 101_000  # 101 credits, balance is 100
        before = _messages(db, chat.id)

        with pytest.raises(InsufficientCredits) as excinfo:
            engine.send_turn(context, chat.id, "Hello")

        assert excinfo.value.required == 101
        assert excinfo.value.available == 100
        assert excinfo.value.is_new_session is True
        assert "101" in excinfo.value.message and "100" in excinfo.value.message
        assert llm.turn_calls == []
        assert len(_messages(db, chat.id)) == len(before)
        assert ledger.balance(user.id) == 100
        assert _usage_entries(db, user.id) == []

    def test_exact_balance_is_enough(self, engine, llm, ledger, user, context, chat) -> None:
        llm.token_count = 100_000
        engine.send_turn(context, chat.id, "Hello")
        assert ledger.balance(user.id) == 0

    def test_zero_balance_refused(self, engine, llm, db, ledger, lifecycle, character) -> None:
        broke = make_user(db, ledger, credits=0)
        ctx = RequestContext(broke.id)
        chat = lifecycle.create(ctx, character.id)
        with pytest.raises(InsufficientCredits):
            engine.send_turn(ctx, chat.id, "Hello")
        assert llm.turn_calls == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    def test_requires_user(self, engine, chat) -> None:
        with pytest.raises(Unauthenticated) as excinfo:
            engine.send_turn(RequestContext(None), chat.id, "Hello")
        assert excinfo.value.is_new_session is False

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty_message(self, engine, llm, context, chat, text: str) -> None:
        with pytest.raises(ValidationError):
            engine.send_turn(context, chat.id, text)
        assert llm.turn_calls == []

    def test_too_long_message(self, engine, context, chat) -> None:
        with pytest.raises(ValidationError):
            engine.send_turn(context, chat.id, "x" * 4001)

    def test_unknown_chat(self, engine, context) -> None:
        with pytest.raises(NotFoundOrUnauthorized):
            engine.send_turn(context, "missing", "Hello")

    def test_someone_elses_chat(self, engine, llm, db, ledger, chat) -> None:
        stranger = make_user(db, ledger)
        with pytest.raises(NotFoundOrUnauthorized):
            engine.send_turn(RequestContext(stranger.id), chat.id, "Hello")
        assert llm.turn_calls == []

    def test_rate_limit_propagates_without_writes(self, engine, llm, ledger, db, user, context, chat) -> None:
        llm.turn_replies = [RateLimitExceeded(retry_after=60)]
        with pytest.raises(RateLimitExceeded) as excinfo:
            engine.send_turn(context, chat.id, "Hello")
        assert excinfo.value.retry_after == 60
        assert excinfo.value.is_new_session is True
        assert len(_messages(db, chat.id)) == 1
        assert ledger.balance(user.id) == 100

    def test_empty_generation(self, engine, llm, context, chat) -> None:
        llm.turn_replies = ["   "]
        with pytest.raises(GenerationError):
            engine.send_turn(context, chat.id, "Hello")

    def test_unexpected_error_becomes_internal(self, engine, llm, context, chat) -> None:
        llm.turn_replies = [RuntimeError("socket closed")]
        with pytest.raises(InternalError) as excinfo:
            engine.send_turn(context, chat.id, "Hello")
        assert excinfo.value.is_new_session is True
        assert "socket" not in excinfo.value.message

    def test_persistence_failure_rolls_back_everything(self, engine, ledger, db, user, context, chat) -> None:
        before = _chat(db, chat.id)
        with patch.object(engine.ledger, "debit", side_effect=RuntimeError("disk full")):
            with pytest.raises(InternalError):
                engine.send_turn(context, chat.id, "Hello")

        assert len(_messages(db, chat.id)) == 1
        assert ledger.balance(user.id) == 100
        assert ledger.verify(user.id) is True
        after = _chat(db, chat.id)
        assert after.last_message_at == before.last_message_at
        assert after.system_instruction == before.system_instruction


# ---------------------------------------------------------------------------
# Post-turn work
# ---------------------------------------------------------------------------

class TestPostTurn:
    def test_new_session_flag(self, engine, context, chat) -> None:
        # The opening message counts: 1 before the first turn, 3 before the second
        assert engine.send_turn(context, chat.id, "one").is_new_session is True
        assert engine.send_turn(context, chat.id, "two").is_new_session is False

    def test_title_generated_for_new_session(self, engine, llm, db, context, chat) -> None:
        engine.send_turn(context, chat.id, "one")
        assert _chat(db, chat.id).title == llm.title
        engine.send_turn(context, chat.id, "two")
        assert len(llm.calls_of("title")) == 1

    def test_summary_runs_once_when_cadence_crossed(self, engine, llm, db, context, chat) -> None:
        # 1 opening message + 2 per turn: the sixth turn goes from 11 to 13
        for i in range(5):
            engine.send_turn(context, chat.id, f"message {i}")
        assert llm.calls_of("summary") == []

        engine.send_turn(context, chat.id, "message 5")
        assert len(llm.calls_of("summary")) == 1
        assert len(llm.calls_of("facts")) == 1
        stored = _chat(db, chat.id)
        assert stored.memory_summary == llm.summary
        assert f"- Summary: {llm.summary}" in stored.system_instruction

        engine.send_turn(context, chat.id, "message 6")
        assert len(llm.calls_of("summary")) == 1

    def test_next_turn_sees_new_summary(self, engine, llm, context, chat) -> None:
        for i in range(7):
            engine.send_turn(context, chat.id, f"message {i}")
        assert f"- Summary: {llm.summary}" in llm.turn_calls[-1]["system_instruction"]

    def test_background_failure_does_not_fail_turn(self, engine, llm, tasks, context, chat) -> None:
        llm.text_error = RuntimeError("backend down")
        result = engine.send_turn(context, chat.id, "one")
        assert result.reply_text == "Well met again."
        assert tasks.failures == 0
