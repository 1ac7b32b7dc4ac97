"""Shared fixtures: in-memory database, scripted LLM, inline task queue, seed data."""

import dataclasses
from typing import Any, List, Optional

import pytest

from companion.core.config import Settings, get_settings
from companion.core.context import RequestContext
from companion.core.tasks import BackgroundTaskQueue
from companion.database.connection import DatabaseConnection
from companion.database.init_db import init_tables
from companion.database.models import (
    Character,
    CreditTransactionType,
    NsfwTendency,
    Scene,
    User,
    UserPersona,
    UserProfile,
)
from companion.llm.prompts import TITLE_SYSTEM_PROMPT
from companion.memory.extractor import MemoryExtractor
from companion.memory.store import MemoryStore
from companion.memory.summarizer import SessionSummarizer
from companion.services.conversation import ConversationEngine
from companion.services.credits import CreditLedger
from companion.services.session_lifecycle import SessionLifecycle


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------

class FakeLLM:
    """
    Scripted stand-in for LLMClient.

    Turn replies are popped from `turn_replies` (falling back to
    `default_turn`); an Exception in the queue is raised instead. Text
    prompts are answered by kind: title, summary, facts or opening line.
    """

    def __init__(self) -> None:
        self.turn_replies: List[Any] = []
        self.default_turn = '{"reply": "Well met again.", "userCharacterMemory": ""}'
        self.title = "Rainy Night At The Inn"
        self.summary = "The user and the innkeeper talked about the storm."
        self.facts = "[]"
        self.opening_line = "The rain hammers the shutters as you step inside."
        self.text_error: Optional[Exception] = None
        self.token_count: Any = 10
        self.turn_calls: List[dict] = []
        self.text_calls: List[tuple] = []

    def generate_turn(self, system_instruction, history, message, nsfw_tendency) -> str:
        self.turn_calls.append({
            "system_instruction": system_instruction,
            "history": list(history),
            "message": message,
            "nsfw_tendency": nsfw_tendency,
        })
        reply = self.turn_replies.pop(0) if self.turn_replies else self.default_turn
        if isinstance(reply, Exception):
            raise reply
        return reply

    def generate_text(
        self,
        prompt,
        system_instruction=None,
        nsfw_tendency=None,
        temperature=0.7,
        max_output_tokens=1024,
    ) -> str:
        kind = self._kind(prompt, system_instruction)
        self.text_calls.append((kind, prompt))
        if self.text_error is not None:
            raise self.text_error
        return {
            "title": self.title,
            "summary": self.summary,
            "facts": self.facts,
            "opening": self.opening_line,
        }[kind]

    def count_tokens(self, contents) -> int:
        if isinstance(self.token_count, Exception):
            raise self.token_count
        return self.token_count

    def calls_of(self, kind: str) -> List[str]:
        return [prompt for k, prompt in self.text_calls if k == kind]

    @staticmethod
    def _kind(prompt: str, system_instruction: Optional[str]) -> str:
        if system_instruction == TITLE_SYSTEM_PROMPT:
            return "title"
        if "conversation summarizer" in prompt:
            return "summary"
        if "JSON array" in prompt:
            return "facts"
        return "opening"


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return dataclasses.replace(
        get_settings(),
        database_url="sqlite://",
        google_api_key="",
        groq_api_key="",
        history_window=25,
        summary_every_n_messages=12,
        tokens_per_credit=1000,
        background_tasks_inline=True,
    )


@pytest.fixture
def db() -> DatabaseConnection:
    database = DatabaseConnection("sqlite://")
    init_tables(database)
    yield database
    database.close()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def tasks() -> BackgroundTaskQueue:
    return BackgroundTaskQueue(inline=True)


@pytest.fixture
def store(db) -> MemoryStore:
    return MemoryStore(db)


@pytest.fixture
def ledger(db) -> CreditLedger:
    return CreditLedger(db)


@pytest.fixture
def lifecycle(db, llm, settings) -> SessionLifecycle:
    return SessionLifecycle(db, llm, settings)


@pytest.fixture
def summarizer(db, llm, settings) -> SessionSummarizer:
    return SessionSummarizer(db, llm, settings)


@pytest.fixture
def extractor(db, llm, store, settings) -> MemoryExtractor:
    return MemoryExtractor(db, llm, store, settings)


@pytest.fixture
def engine(db, llm, tasks, settings, store, summarizer, extractor, lifecycle, ledger) -> ConversationEngine:
    return ConversationEngine(
        db,
        llm,
        tasks=tasks,
        settings=settings,
        memory_store=store,
        summarizer=summarizer,
        extractor=extractor,
        lifecycle=lifecycle,
        ledger=ledger,
    )


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

def make_user(db, ledger, credits: int = 100, preferred_name: Optional[str] = "Sammy") -> User:
    with db.get_session() as s:
        user = User(name="Sam", email=None, credits=0)
        user.profile = UserProfile(full_name="Samuel Vimes", preferred_name=preferred_name)
        user.persona = UserPersona(interests="astronomy, tea", excluded_topics="politics")
        s.add(user)
    if credits:
        ledger.grant(user.id, credits, CreditTransactionType.INITIAL_GRANT)
    return user


def make_character(db, nsfw: NsfwTendency = NsfwTendency.NONE, name: str = "Mara") -> Character:
    with db.get_session() as s:
        character = Character(
            name=name,
            description="Keeper of the Crooked Lantern inn",
            system_instruction="You are a warm but sharp-tongued innkeeper.",
            ai_tone="wry",
            nsfw_tendency=nsfw,
            greeting="Well met, traveler.",
        )
        s.add(character)
    return character


def make_scene(db) -> Scene:
    with db.get_session() as s:
        scene = Scene(
            title="A Stormy Night",
            summary="Rain, thunder and a fire in the hearth",
            scene_instruction="Offer the traveler a seat by the fire.",
        )
        s.add(scene)
    return scene


@pytest.fixture
def user(db, ledger) -> User:
    return make_user(db, ledger)


@pytest.fixture
def character(db) -> Character:
    return make_character(db)


@pytest.fixture
def scene(db) -> Scene:
    return make_scene(db)


@pytest.fixture
def context(user) -> RequestContext:
    return RequestContext(user_id=user.id)


@pytest.fixture
def chat(lifecycle, context, character):
    return lifecycle.create(context, character.id)
