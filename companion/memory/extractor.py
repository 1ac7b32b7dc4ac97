"""
Memory Extractor - mines durable user facts from a conversation.

Complements the per-turn userCharacterMemory field: on the summarization
cadence the recent transcript is re-read and every new fact is merged
into the (user, character) memory list.
"""
from typing import List, Optional

from companion.core.config import Settings, get_settings
from companion.core.logging_config import get_logger
from companion.database import repository
from companion.database.connection import DatabaseConnection
from companion.database.models import Chat
from companion.llm.parsing import parse_fact_list
from companion.llm.prompts import format_transcript, get_memory_extraction_prompt
from companion.memory.store import MemoryStore

logger = get_logger(__name__)


class MemoryExtractor:
    """Extracts facts with one backend call and merges them."""

    def __init__(
        self,
        db: DatabaseConnection,
        llm,
        store: MemoryStore,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.llm = llm
        self.store = store
        self.settings = settings or get_settings()

    def extract(self, session_id: str) -> List[str]:
        """
        Returns:
            Facts newly added to the store (empty on failure)
        """
        with self.db.get_session() as db_session:
            chat = db_session.get(Chat, session_id)
            if chat is None:
                logger.warning(f"Memory extraction skipped, chat not found: {session_id}")
                return []
            user_id, character_id = chat.user_id, chat.character_id
            messages = repository.recent_messages(db_session, session_id, self.settings.history_window)
            if not messages:
                return []
            known = repository.get_memory_facts(db_session, user_id, character_id)
            prompt = get_memory_extraction_prompt(
                chat.character.name, format_transcript(messages), known
            )

        try:
            raw = self.llm.generate_text(prompt, temperature=0.2)
        except Exception as e:
            logger.error(f"Memory extraction failed for chat {session_id}: {e}")
            return []

        candidates = parse_fact_list(raw)
        if not candidates:
            return []
        return self.store.merge_from_conversation(user_id, character_id, candidates)
