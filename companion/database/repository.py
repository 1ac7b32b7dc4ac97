"""
Repository helpers - the queries shared by the services.

All functions take an open SQLAlchemy Session so that callers decide the
transaction boundary; nothing here commits.
"""
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from companion.database.models import (
    Character,
    Chat,
    Message,
    Scene,
    User,
    UserCharacterMemory,
)


def get_user(db_session: Session, user_id: str, for_update: bool = False) -> Optional[User]:
    """Load a user with profile and persona; optionally lock the row."""
    stmt = (
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.profile), selectinload(User.persona))
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db_session.execute(stmt).scalar_one_or_none()


def get_character(db_session: Session, character_id: str) -> Optional[Character]:
    return db_session.get(Character, character_id)


def get_scene(db_session: Session, scene_id: str) -> Optional[Scene]:
    return db_session.get(Scene, scene_id)


def get_chat_for_user(db_session: Session, chat_id: str, user_id: str) -> Optional[Chat]:
    """Fetch a chat only if it belongs to user_id."""
    stmt = select(Chat).where(Chat.id == chat_id, Chat.user_id == user_id)
    return db_session.execute(stmt).scalar_one_or_none()


def count_messages(db_session: Session, chat_id: str) -> int:
    stmt = select(func.count(Message.id)).where(Message.chat_id == chat_id)
    return db_session.execute(stmt).scalar_one()


def recent_messages(db_session: Session, chat_id: str, limit: int) -> List[Message]:
    """
    Return the last `limit` messages of a chat in chronological order.
    """
    stmt = (
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.sent_at.desc(), Message.id.desc())
        .limit(limit)
    )
    messages = list(db_session.execute(stmt).scalars())
    messages.reverse()
    return messages


def all_messages(db_session: Session, chat_id: str) -> List[Message]:
    stmt = (
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.sent_at.asc(), Message.id.asc())
    )
    return list(db_session.execute(stmt).scalars())


def first_messages(db_session: Session, chat_id: str, limit: int) -> List[Message]:
    return all_messages(db_session, chat_id)[:limit]


def get_message_for_user(db_session: Session, message_id: int, user_id: str) -> Optional[Message]:
    """Fetch a message only if its chat belongs to user_id."""
    stmt = (
        select(Message)
        .join(Chat, Chat.id == Message.chat_id)
        .where(Message.id == message_id, Chat.user_id == user_id)
    )
    return db_session.execute(stmt).scalar_one_or_none()


def get_memory_record(
    db_session: Session,
    user_id: str,
    character_id: str,
    for_update: bool = False,
) -> Optional[UserCharacterMemory]:
    stmt = select(UserCharacterMemory).where(
        UserCharacterMemory.user_id == user_id,
        UserCharacterMemory.character_id == character_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db_session.execute(stmt).scalar_one_or_none()


def get_memory_facts(db_session: Session, user_id: str, character_id: str) -> List[str]:
    record = get_memory_record(db_session, user_id, character_id)
    return list(record.memories or []) if record else []


def latest_summary(
    db_session: Session,
    user_id: str,
    character_id: str,
    exclude_chat_id: Optional[str] = None,
) -> Optional[str]:
    """
    Summary of the most recently active chat for this (user, character).

    Chats without a summary are skipped so an empty newer chat does not
    hide an older summary.
    """
    stmt = (
        select(Chat.memory_summary)
        .where(
            Chat.user_id == user_id,
            Chat.character_id == character_id,
            Chat.memory_summary.is_not(None),
        )
        .order_by(Chat.last_message_at.desc())
        .limit(1)
    )
    if exclude_chat_id:
        stmt = stmt.where(Chat.id != exclude_chat_id)
    return db_session.execute(stmt).scalar_one_or_none()
