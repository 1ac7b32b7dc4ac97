"""
API dependencies - caller identity and service singletons.

Services are created lazily on first use and shared by every request.
Tests replace them through app.dependency_overrides.
"""
from typing import Optional

from fastapi import Header

from companion.core.config import get_settings
from companion.core.context import RequestContext
from companion.core.logging_config import get_logger
from companion.core.tasks import BackgroundTaskQueue
from companion.database.connection import get_database
from companion.llm.client import LLMClient
from companion.memory.store import MemoryStore
from companion.services.conversation import ConversationEngine
from companion.services.credits import CreditLedger
from companion.services.session_lifecycle import SessionLifecycle

logger = get_logger(__name__)

_llm_client: Optional[LLMClient] = None
_task_queue: Optional[BackgroundTaskQueue] = None
_memory_store: Optional[MemoryStore] = None
_lifecycle: Optional[SessionLifecycle] = None
_ledger: Optional[CreditLedger] = None
_engine: Optional[ConversationEngine] = None


def get_request_context(
    x_user_id: Optional[str] = Header(default=None),
    x_request_id: Optional[str] = Header(default=None),
) -> RequestContext:
    """
    Build the caller identity from the trusted X-User-Id header.

    The header is set by the authenticating gateway in front of the API.
    Operations raise Unauthenticated when it is missing.
    """
    user_id = x_user_id.strip() if x_user_id else None
    return RequestContext(user_id=user_id or None, request_id=x_request_id)


def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


def get_task_queue() -> BackgroundTaskQueue:
    global _task_queue
    if _task_queue is None:
        settings = get_settings()
        _task_queue = BackgroundTaskQueue(
            max_workers=settings.background_workers,
            inline=settings.background_tasks_inline,
        )
    return _task_queue


def get_memory_store() -> MemoryStore:
    global _memory_store
    if _memory_store is None:
        _memory_store = MemoryStore(get_database())
    return _memory_store


def get_session_lifecycle() -> SessionLifecycle:
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = SessionLifecycle(get_database(), get_llm_client())
    return _lifecycle


def get_credit_ledger() -> CreditLedger:
    global _ledger
    if _ledger is None:
        _ledger = CreditLedger(get_database())
    return _ledger


def get_conversation_engine() -> ConversationEngine:
    global _engine
    if _engine is None:
        _engine = ConversationEngine(
            get_database(),
            get_llm_client(),
            tasks=get_task_queue(),
            memory_store=get_memory_store(),
            lifecycle=get_session_lifecycle(),
            ledger=get_credit_ledger(),
        )
    return _engine


def shutdown_services() -> None:
    """Drain background work and drop the singletons."""
    global _llm_client, _task_queue, _memory_store, _lifecycle, _ledger, _engine
    if _task_queue is not None:
        _task_queue.shutdown(wait_for_tasks=True)
    _llm_client = None
    _task_queue = None
    _memory_store = None
    _lifecycle = None
    _ledger = None
    _engine = None
    logger.info("API services released")
