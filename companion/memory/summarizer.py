"""
Session Summarizer - rolling conversation summary.

Runs in the background every SUMMARY_EVERY_N_MESSAGES messages. The new
summary replaces the old one and the session's system instruction is
re-rendered in the same transaction, so the next turn already sees it.
"""
from typing import Optional

from companion.core.config import Settings, get_settings
from companion.core.logging_config import get_logger
from companion.database import repository
from companion.database.connection import DatabaseConnection
from companion.database.models import Chat
from companion.llm.prompts import (
    InstructionTemplate,
    format_transcript,
    get_summary_prompt,
    render_dynamic_block,
)

logger = get_logger(__name__)


class SessionSummarizer:
    """
    Summarizes a chat and refreshes its system instruction.

    Example:
        >>> summarizer = SessionSummarizer(db, llm)
        >>> summarizer.summarize(chat_id)
        'The user told Aria about their trip to Lisbon...'
    """

    def __init__(self, db: DatabaseConnection, llm, settings: Optional[Settings] = None):
        self.db = db
        self.llm = llm
        self.settings = settings or get_settings()

    def summarize(self, session_id: str) -> Optional[str]:
        """
        Produce and store a new summary for a chat.

        Args:
            session_id: Chat to summarize

        Returns:
            The stored summary, or None when nothing was written
        """
        with self.db.get_session() as db_session:
            chat = db_session.get(Chat, session_id)
            if chat is None:
                logger.warning(f"Summarize skipped, chat not found: {session_id}")
                return None
            messages = repository.all_messages(db_session, session_id)
            if not messages:
                return None
            prompt = get_summary_prompt(format_transcript(messages), chat.memory_summary)

        try:
            summary = (self.llm.generate_text(prompt) or "").strip()
        except Exception as e:
            logger.error(f"Summary generation failed for chat {session_id}: {e}")
            return None

        if not summary:
            logger.warning(f"Empty summary for chat {session_id}, keeping the previous one")
            return None

        with self.db.get_session() as db_session:
            chat = db_session.get(Chat, session_id)
            if chat is None:
                logger.warning(f"Chat deleted during summarization: {session_id}")
                return None
            user = repository.get_user(db_session, chat.user_id)
            facts = repository.get_memory_facts(db_session, chat.user_id, chat.character_id)
            block = render_dynamic_block(
                facts,
                summary,
                persona=user.persona if user else None,
                profile=user.profile if user else None,
            )
            chat.memory_summary = summary
            chat.system_instruction = InstructionTemplate.from_dict(chat.instruction_template).render(block)

        logger.info(f"Summary updated for chat {session_id} ({len(summary)} chars)")
        return summary
