"""
Database Models - SQLAlchemy ORM models for persistent storage.

This module defines the schema for:
- Users, their profile and AI persona preferences
- Characters and scenes (read-only to the engine)
- Chats (sessions) and their messages
- Per (user, character) long-term memory facts
- The credit ledger
"""
import enum
import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class NsfwTendency(str, enum.Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class MessageRole(str, enum.Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


class MessageRating(str, enum.Enum):
    GOOD = "GOOD"
    BAD = "BAD"


class CreditTransactionType(str, enum.Enum):
    INITIAL_GRANT = "INITIAL_GRANT"
    MONTHLY_ALLOWANCE = "MONTHLY_ALLOWANCE"
    PURCHASE = "PURCHASE"
    CHAT_USAGE = "CHAT_USAGE"


class User(Base):
    """
    Account owning chats, memories and a credit balance.

    `credits` is a denormalized running counter; it must always equal the
    sum of this user's credit_transactions.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=True)
    email = Column(String(320), nullable=True, unique=True)
    credits = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    profile = relationship("UserProfile", uselist=False, back_populates="user",
                           cascade="all, delete-orphan")
    persona = relationship("UserPersona", uselist=False, back_populates="user",
                           cascade="all, delete-orphan")


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    preferred_name = Column(String(200), nullable=True)
    bio = Column(Text, nullable=True)
    pronouns = Column(String(50), nullable=True)

    user = relationship("User", back_populates="profile")


class UserPersona(Base):
    """How the user wants characters to talk to them."""
    __tablename__ = "user_personas"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    ai_tone = Column(String(200), nullable=True)
    interests = Column(Text, nullable=True)
    user_goals = Column(Text, nullable=True)
    communication_style = Column(Text, nullable=True)
    excluded_topics = Column(Text, nullable=True)

    user = relationship("User", back_populates="persona")


class Character(Base):
    """Persona template a chat is held with."""
    __tablename__ = "characters"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    system_instruction = Column(Text, nullable=False)
    ai_tone = Column(String(200), nullable=True)
    nsfw_tendency = Column(Enum(NsfwTendency), default=NsfwTendency.NONE, nullable=False)
    greeting = Column(Text, nullable=False)
    like_count = Column(Integer, default=0, nullable=False)
    chat_count = Column(Integer, default=0, nullable=False)
    creator_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_public = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Scene(Base):
    """Optional context a chat starts in."""
    __tablename__ = "scenes"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(200), nullable=False)
    summary = Column(Text, nullable=True)
    scene_instruction = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=True)


class Chat(Base):
    """
    A conversation session between one user and one character.

    instruction_template holds the static {"head", "tail"} parts of the
    system instruction; system_instruction is the latest rendered text.
    """
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    character_id = Column(String(36), ForeignKey("characters.id", ondelete="CASCADE"), nullable=False, index=True)
    scene_id = Column(String(36), ForeignKey("scenes.id", ondelete="SET NULL"), nullable=True)
    instruction_template = Column(JSON, nullable=False)
    system_instruction = Column(Text, nullable=False)
    opening_message = Column(Text, nullable=False)
    memory_summary = Column(Text, nullable=True)
    title = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_message_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    character = relationship("Character")
    scene = relationship("Scene")
    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.id",
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "character_id": self.character_id,
            "scene_id": self.scene_id,
            "title": self.title,
            "opening_message": self.opening_message,
            "memory_summary": self.memory_summary,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
        }


class Message(Base):
    """
    Append-only chat message.

    Canonical order is (sent_at, id); the integer id breaks ties between
    messages written in the same transaction.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(MessageRole), nullable=False)
    content = Column(Text, nullable=False)
    sent_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    rating = Column(Enum(MessageRating), nullable=True)
    feedback = Column(JSON, nullable=True)

    chat = relationship("Chat", back_populates="messages")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "chat_id": self.chat_id,
            "role": self.role.value,
            "content": self.content,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "rating": self.rating.value if self.rating else None,
            "feedback": self.feedback,
        }

    def to_llm_format(self) -> Dict[str, str]:
        """Convert to the role/text pair the LLM client expects."""
        return {"role": self.role.value, "text": self.content}


class UserCharacterMemory(Base):
    """Ordered list of long-term facts a character remembers about a user."""
    __tablename__ = "user_character_memories"
    __table_args__ = (UniqueConstraint("user_id", "character_id", name="uq_memory_user_character"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    character_id = Column(String(36), ForeignKey("characters.id", ondelete="CASCADE"), nullable=False)
    memories = Column(JSON, default=list, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class CreditTransaction(Base):
    """Immutable signed credit delta."""
    __tablename__ = "credit_transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    type = Column(Enum(CreditTransactionType), nullable=False)
    description = Column(String(300), nullable=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "amount": self.amount,
            "type": self.type.value,
            "description": self.description,
            "message_id": self.message_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
