"""
Session Lifecycle - creating, resuming, titling and deleting chats.

This service owns everything about a chat except the turns themselves:
1. create    - compose the instruction template and the opening message
2. resume    - load a chat with its ordered messages
3. delete    - remove a chat and keep the character's chat counter honest
4. titles    - generated in the background, or renamed by the user
5. feedback  - ratings and written feedback on messages

Every operation is scoped to the caller's RequestContext; a chat that
belongs to someone else looks exactly like a chat that does not exist.
"""
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from companion.core.config import Settings, get_settings
from companion.core.context import RequestContext
from companion.core.exceptions import NotFoundError, NotFoundOrUnauthorized, ValidationError
from companion.core.logging_config import get_logger
from companion.core.validators import clean_generated_title, validate_title
from companion.database import repository
from companion.database.connection import DatabaseConnection
from companion.database.models import Character, Chat, Message, MessageRating, MessageRole
from companion.llm.prompts import (
    TITLE_SYSTEM_PROMPT,
    compose,
    get_opening_line_prompt,
    get_title_prompt,
    preferred_name,
    render_dynamic_block,
)
from companion.models.chat import MessageFeedback

logger = get_logger(__name__)

TITLE_SOURCE_MESSAGES = 3
PREVIEW_LENGTH = 120


class SessionLifecycle:
    """
    Service for chat sessions.

    Example:
        >>> lifecycle = SessionLifecycle(db, llm)
        >>> chat = lifecycle.create(RequestContext(user_id), character_id)
        >>> chat.opening_message
        'Well met, traveler.'
    """

    def __init__(self, db: DatabaseConnection, llm, settings: Optional[Settings] = None):
        """
        Initialize the service.

        Args:
            db: Database connection
            llm: Backend client used for opening lines and titles
            settings: Optional settings (global settings if omitted)
        """
        self.db = db
        self.llm = llm
        self.settings = settings or get_settings()

    # ==================== CREATE ====================

    def create(
        self,
        context: RequestContext,
        character_id: str,
        scene_id: Optional[str] = None,
    ) -> Chat:
        """
        Start a new chat with a character, optionally inside a scene.

        Raises:
            Unauthenticated: No user in context
            NotFoundError: Unknown user, character or scene
        """
        user_id = context.require_user()

        with self.db.get_session() as db_session:
            user = repository.get_user(db_session, user_id)
            if user is None:
                raise NotFoundError("User not found", details=f"user_id={user_id}")
            character = repository.get_character(db_session, character_id)
            if character is None:
                raise NotFoundError("Character not found", details=f"character_id={character_id}")
            scene = None
            if scene_id:
                scene = repository.get_scene(db_session, scene_id)
                if scene is None:
                    raise NotFoundError("Scene not found", details=f"scene_id={scene_id}")

            template = compose(character, scene)
            facts = repository.get_memory_facts(db_session, user_id, character_id)
            summary = repository.latest_summary(db_session, user_id, character_id)
            instruction = template.render(
                render_dynamic_block(facts, summary, persona=user.persona, profile=user.profile)
            )

            greeting = character.greeting
            nsfw_tendency = character.nsfw_tendency
            opening_prompt = None
            if scene is not None:
                user_name = preferred_name(user.profile, fallback=user.name) or "User"
                opening_prompt = get_opening_line_prompt(character, scene, user_name)

        opening = self._opening_message(opening_prompt, greeting, nsfw_tendency)

        with self.db.get_session() as db_session:
            character = repository.get_character(db_session, character_id)
            if character is None:
                raise NotFoundError("Character not found", details=f"character_id={character_id}")
            chat = Chat(
                user_id=user_id,
                character_id=character_id,
                scene_id=scene_id,
                instruction_template=template.to_dict(),
                system_instruction=instruction,
                opening_message=opening,
            )
            db_session.add(chat)
            db_session.flush()
            db_session.add(Message(chat_id=chat.id, role=MessageRole.ASSISTANT, content=opening))
            character.chat_count += 1

        logger.info(
            f"Chat created: id={chat.id}, user={user_id}, character={character_id}, "
            f"scene={scene_id or '-'}"
        )
        return chat

    def _opening_message(self, prompt: Optional[str], greeting: str, nsfw_tendency) -> str:
        """Scene opening line from the backend; the greeting on any failure."""
        if prompt is None:
            return greeting
        try:
            line = self.llm.generate_text(prompt, nsfw_tendency=nsfw_tendency, temperature=0.9)
        except Exception as e:
            logger.warning(f"Opening line generation failed, using greeting: {e}")
            return greeting
        line = (line or "").strip()
        return line or greeting

    # ==================== TITLES ====================

    def generate_title(self, session_id: str, user_id: str) -> Optional[str]:
        """
        Generate and store a short title from the first messages.

        Runs as a background job: errors are logged and None is returned.
        """
        try:
            with self.db.get_session() as db_session:
                chat = repository.get_chat_for_user(db_session, session_id, user_id)
                if chat is None:
                    logger.warning(f"Title skipped, chat not found: {session_id}")
                    return None
                messages = repository.first_messages(db_session, session_id, TITLE_SOURCE_MESSAGES)
                prompt = get_title_prompt(messages)

            raw = self.llm.generate_text(
                prompt,
                system_instruction=TITLE_SYSTEM_PROMPT,
                temperature=0.5,
                max_output_tokens=64,
            )
            title = clean_generated_title(raw, self.settings.title_max_length)
            if not title:
                logger.warning(f"Empty title generated for chat {session_id}")
                return None

            with self.db.get_session() as db_session:
                chat = repository.get_chat_for_user(db_session, session_id, user_id)
                if chat is None:
                    return None
                chat.title = title

            logger.info(f"Title set for chat {session_id}: {title}")
            return title
        except Exception as e:
            logger.error(f"Title generation failed for chat {session_id}: {e}")
            return None

    def rename(self, context: RequestContext, session_id: str, title: str) -> Chat:
        """
        Raises:
            ValidationError: Title empty or longer than 150 characters
            NotFoundOrUnauthorized: Chat missing or not owned
        """
        user_id = context.require_user()
        title = validate_title(title)
        with self.db.get_session() as db_session:
            chat = self._owned_chat(db_session, session_id, user_id)
            chat.title = title
        return chat

    # ==================== READ ====================

    def resume(self, context: RequestContext, session_id: str) -> Chat:
        """Load a chat with its messages in canonical order."""
        user_id = context.require_user()
        with self.db.get_session() as db_session:
            stmt = (
                select(Chat)
                .where(Chat.id == session_id, Chat.user_id == user_id)
                .options(selectinload(Chat.messages))
            )
            chat = db_session.execute(stmt).scalar_one_or_none()
            if chat is None:
                raise NotFoundOrUnauthorized("Chat", session_id)
        # Detached from here on; sorting does not touch the database
        chat.messages.sort(key=lambda m: (m.sent_at, m.id))
        return chat

    def list_for_character(
        self,
        context: RequestContext,
        character_id: str,
        limit: int = 30,
    ) -> List[dict]:
        """Chats with this character that have messages, newest first."""
        user_id = context.require_user()
        stmt = (
            select(Chat)
            .where(Chat.user_id == user_id, Chat.character_id == character_id)
            .where(select(Message.id).where(Message.chat_id == Chat.id).exists())
            .order_by(Chat.last_message_at.desc())
            .limit(limit)
        )
        return self._list_items(stmt)

    def recent(self, context: RequestContext, limit: int = 10) -> List[dict]:
        """Most recently active chats across all characters."""
        user_id = context.require_user()
        stmt = (
            select(Chat)
            .where(Chat.user_id == user_id)
            .order_by(Chat.last_message_at.desc())
            .limit(limit)
        )
        return self._list_items(stmt)

    def _list_items(self, stmt) -> List[dict]:
        with self.db.get_session() as db_session:
            chats = list(db_session.execute(stmt.options(selectinload(Chat.character))).scalars())
            items = []
            for chat in chats:
                last = repository.recent_messages(db_session, chat.id, 1)
                preview = last[0].content[:PREVIEW_LENGTH] if last else None
                items.append({
                    "id": chat.id,
                    "character_id": chat.character_id,
                    "character_name": chat.character.name if chat.character else None,
                    "title": chat.title,
                    "last_message_at": chat.last_message_at,
                    "last_message_preview": preview,
                })
            return items

    # ==================== DELETE ====================

    def delete(self, context: RequestContext, session_id: str) -> None:
        """
        Delete a chat and its messages, decrementing the character's counter.

        Raises:
            NotFoundOrUnauthorized: Chat missing or not owned
        """
        user_id = context.require_user()
        with self.db.get_session() as db_session:
            chat = self._owned_chat(db_session, session_id, user_id)
            character = db_session.get(Character, chat.character_id, with_for_update=True)
            db_session.delete(chat)
            if character is not None:
                character.chat_count = max(0, character.chat_count - 1)
        logger.info(f"Chat deleted: id={session_id}, user={user_id}")

    # ==================== MESSAGE FEEDBACK ====================

    def rate_message(
        self,
        context: RequestContext,
        message_id: int,
        rating: Optional[MessageRating],
    ) -> dict:
        """Set or clear (rating=None) the rating of a message."""
        user_id = context.require_user()
        with self.db.get_session() as db_session:
            message = self._owned_message(db_session, message_id, user_id)
            message.rating = MessageRating(rating) if rating is not None else None
            return message.to_dict()

    def submit_feedback(
        self,
        context: RequestContext,
        message_id: int,
        tags: List[str],
        details: Optional[str] = None,
    ) -> dict:
        """
        Attach written feedback to a message.

        Raises:
            ValidationError: Feedback is empty or malformed
        """
        user_id = context.require_user()
        try:
            feedback = MessageFeedback(tags=tags or [], details=details)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "feedback"
            raise ValidationError(f"Invalid feedback: {first.get('msg')}", field=field)

        with self.db.get_session() as db_session:
            message = self._owned_message(db_session, message_id, user_id)
            message.feedback = feedback.model_dump()
            return message.to_dict()

    # ==================== HELPERS ====================

    @staticmethod
    def _owned_chat(db_session, session_id: str, user_id: str) -> Chat:
        chat = repository.get_chat_for_user(db_session, session_id, user_id)
        if chat is None:
            raise NotFoundOrUnauthorized("Chat", session_id)
        return chat

    @staticmethod
    def _owned_message(db_session, message_id: int, user_id: str) -> Message:
        message = repository.get_message_for_user(db_session, message_id, user_id)
        if message is None:
            raise NotFoundOrUnauthorized("Message", str(message_id))
        return message
