"""
Conversation Engine - one user turn, end to end.

This service orchestrates the turn flow:
1. Authorize the caller and load the chat, history, facts and user
2. Render the system instruction with a fresh dynamic block
3. Estimate the cost and refuse the turn if credits do not cover it
4. Call the backend for a structured reply and parse it
5. Persist both messages, the debit and its ledger entry atomically
6. Queue the background work: memory merge, title, summary, extraction

Why admission control before generation:
1. A refused turn costs nothing - no backend call, no writes
2. The balance can never go negative through a turn
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from companion.core.config import Settings, get_settings
from companion.core.context import RequestContext
from companion.core.exceptions import (
    CompanionException,
    GenerationError,
    InsufficientCredits,
    InternalError,
    NotFoundError,
    NotFoundOrUnauthorized,
)
from companion.core.logging_config import get_logger
from companion.core.tasks import BackgroundTaskQueue
from companion.core.validators import validate_message
from companion.database import repository
from companion.database.connection import DatabaseConnection
from companion.database.models import Message, MessageRole
from companion.llm.parsing import parse_turn_reply
from companion.llm.prompts import InstructionTemplate, render_dynamic_block
from companion.memory.extractor import MemoryExtractor
from companion.memory.store import MemoryStore
from companion.memory.summarizer import SessionSummarizer
from companion.services.credits import CreditLedger
from companion.services.session_lifecycle import SessionLifecycle
from companion.services.token_estimator import TokenCostEstimator

logger = get_logger(__name__)

NEW_SESSION_MAX_MESSAGES = 2


@dataclass
class TurnResult:
    """
    Outcome of a successful turn.

    Attributes:
        reply_text: Character reply shown to the user
        is_new_session: True when the chat had at most two messages before the turn
        memory_fact: Fact learned this turn, or None
    """
    reply_text: str
    is_new_session: bool
    memory_fact: Optional[str] = None


@dataclass
class _TurnState:
    """Everything loaded in the read phase of a turn."""
    character_id: str
    nsfw_tendency: object
    history: List[Dict[str, str]]
    message_count: int
    instruction: str
    available_credits: int


class ConversationEngine:
    """
    Runs conversation turns.

    Example:
        >>> engine = ConversationEngine(db, llm, tasks=BackgroundTaskQueue())
        >>> result = engine.send_turn(RequestContext(user_id), chat_id, "Hello!")
        >>> result.reply_text
        'Ah, a visitor! Come in out of the rain.'
    """

    def __init__(
        self,
        db: DatabaseConnection,
        llm,
        tasks: Optional[BackgroundTaskQueue] = None,
        settings: Optional[Settings] = None,
        memory_store: Optional[MemoryStore] = None,
        summarizer: Optional[SessionSummarizer] = None,
        extractor: Optional[MemoryExtractor] = None,
        lifecycle: Optional[SessionLifecycle] = None,
        estimator: Optional[TokenCostEstimator] = None,
        ledger: Optional[CreditLedger] = None,
    ):
        """
        Initialize the engine.

        Collaborators that are not passed in are built from db, llm and
        settings.
        """
        self.db = db
        self.llm = llm
        self.settings = settings or get_settings()
        self.tasks = tasks or BackgroundTaskQueue(
            max_workers=self.settings.background_workers,
            inline=self.settings.background_tasks_inline,
        )
        self.memory_store = memory_store or MemoryStore(db)
        self.summarizer = summarizer or SessionSummarizer(db, llm, self.settings)
        self.extractor = extractor or MemoryExtractor(db, llm, self.memory_store, self.settings)
        self.lifecycle = lifecycle or SessionLifecycle(db, llm, self.settings)
        self.estimator = estimator or TokenCostEstimator(
            counter=getattr(llm, "count_tokens", None),
            tokens_per_credit=self.settings.tokens_per_credit,
        )
        self.ledger = ledger or CreditLedger(db)
        logger.info("ConversationEngine initialized")

    def send_turn(self, context: RequestContext, session_id: str, user_text: str) -> TurnResult:
        """
        Process one user message and return the character's reply.

        Args:
            context: Caller identity
            session_id: Chat to continue
            user_text: The user's message

        Returns:
            TurnResult

        Raises:
            Unauthenticated, ValidationError, NotFoundOrUnauthorized,
            InsufficientCredits, RateLimitExceeded, GenerationError,
            InternalError. Every one carries is_new_session.
        """
        is_new_session = False
        try:
            user_id = context.require_user()
            text = validate_message(user_text, self.settings.max_message_length)

            state = self._load_turn_state(user_id, session_id)
            is_new_session = state.message_count <= NEW_SESSION_MAX_MESSAGES

            logger.info(
                f"Processing turn: chat={session_id}, user={user_id}, "
                f"message_length={len(text)}, history={len(state.history)}"
            )

            payload = state.history + [{"role": MessageRole.USER.value, "text": text}]
            tokens = self.estimator.estimate(payload)
            cost = self.estimator.cost(tokens)
            if state.available_credits < cost:
                logger.info(
                    f"Turn refused: chat={session_id}, required={cost}, "
                    f"available={state.available_credits}"
                )
                raise InsufficientCredits(required=cost, available=state.available_credits)

            raw = self.llm.generate_turn(state.instruction, state.history, text, state.nsfw_tendency)
            if not raw or not raw.strip():
                raise GenerationError()
            parsed = parse_turn_reply(raw)

            before, after = self._persist_turn(
                user_id, session_id, text, parsed.reply, cost, state.instruction
            )

            if parsed.memory_fact:
                self.tasks.submit(
                    "merge_memory",
                    self.memory_store.merge_from_conversation,
                    user_id,
                    state.character_id,
                    [parsed.memory_fact],
                )
            self._schedule_post_turn(session_id, user_id, is_new_session, before, after)

            logger.info(
                f"Turn processed: chat={session_id}, tokens={tokens}, cost={cost}, "
                f"structured={parsed.structured}, messages={after}"
            )
            return TurnResult(
                reply_text=parsed.reply,
                is_new_session=is_new_session,
                memory_fact=parsed.memory_fact,
            )

        except CompanionException as e:
            e.is_new_session = is_new_session
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in conversation engine: {e}")
            error = InternalError()
            error.is_new_session = is_new_session
            raise error from e

    # ==================== TURN STEPS ====================

    def _load_turn_state(self, user_id: str, session_id: str) -> _TurnState:
        with self.db.get_session() as db_session:
            chat = repository.get_chat_for_user(db_session, session_id, user_id)
            if chat is None:
                raise NotFoundOrUnauthorized("Chat", session_id)
            user = repository.get_user(db_session, user_id)
            if user is None:
                raise NotFoundError("User not found", details=f"user_id={user_id}")

            character = chat.character
            message_count = repository.count_messages(db_session, chat.id)
            history = [
                m.to_llm_format()
                for m in repository.recent_messages(db_session, chat.id, self.settings.history_window)
            ]
            facts = repository.get_memory_facts(db_session, user_id, chat.character_id)
            summary = chat.memory_summary or repository.latest_summary(
                db_session, user_id, chat.character_id, exclude_chat_id=chat.id
            )
            block = render_dynamic_block(facts, summary, persona=user.persona, profile=user.profile)
            instruction = InstructionTemplate.from_dict(chat.instruction_template).render(block)

            return _TurnState(
                character_id=chat.character_id,
                nsfw_tendency=character.nsfw_tendency,
                history=history,
                message_count=message_count,
                instruction=instruction,
                available_credits=user.credits,
            )

    def _persist_turn(
        self,
        user_id: str,
        session_id: str,
        text: str,
        reply: str,
        cost: int,
        instruction: str,
    ) -> Tuple[int, int]:
        """
        Write the turn in one transaction.

        Returns:
            (message count before, message count after)
        """
        with self.db.get_session() as db_session:
            user = repository.get_user(db_session, user_id, for_update=True)
            chat = repository.get_chat_for_user(db_session, session_id, user_id)
            if chat is None or user is None:
                raise NotFoundOrUnauthorized("Chat", session_id)
            # Another turn may have spent credits since the admission check
            if user.credits < cost:
                raise InsufficientCredits(required=cost, available=user.credits)

            before = repository.count_messages(db_session, chat.id)
            user_message = Message(
                chat_id=chat.id,
                role=MessageRole.USER,
                content=text,
                sent_at=datetime.utcnow(),
            )
            db_session.add(user_message)
            db_session.flush()
            assistant_message = Message(
                chat_id=chat.id,
                role=MessageRole.ASSISTANT,
                content=reply,
                sent_at=datetime.utcnow(),
            )
            db_session.add(assistant_message)
            db_session.flush()

            self.ledger.debit(
                db_session,
                user,
                cost,
                assistant_message.id,
                description=f"Chat message ({chat.id})",
            )
            chat.last_message_at = assistant_message.sent_at
            chat.system_instruction = instruction

        return before, before + 2

    def _schedule_post_turn(
        self,
        session_id: str,
        user_id: str,
        is_new_session: bool,
        before: int,
        after: int,
    ) -> None:
        if is_new_session:
            self.tasks.submit("generate_title", self.lifecycle.generate_title, session_id, user_id)

        every = self.settings.summary_every_n_messages
        if every > 0 and before // every < after // every:
            logger.info(f"Summary cadence reached: chat={session_id}, messages={after}")
            self.tasks.submit("summarize", self.summarizer.summarize, session_id)
            self.tasks.submit("extract_memories", self.extractor.extract, session_id)
