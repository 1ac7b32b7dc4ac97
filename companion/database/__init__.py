"""
Database module - relational persistence for the companion engine.

This module handles:
- Database connection management
- ORM models for users, characters, chats, memories and credits
- Shared queries
- Schema initialization
"""
from companion.database.connection import DatabaseConnection, get_database, reset_database
from companion.database.init_db import drop_tables, init_tables
from companion.database.models import (
    Base,
    Character,
    Chat,
    CreditTransaction,
    CreditTransactionType,
    Message,
    MessageRating,
    MessageRole,
    NsfwTendency,
    Scene,
    User,
    UserCharacterMemory,
    UserPersona,
    UserProfile,
)

__all__ = [
    # Connection
    "DatabaseConnection",
    "get_database",
    "reset_database",
    # Init
    "init_tables",
    "drop_tables",
    # Models
    "Base",
    "Character",
    "Chat",
    "CreditTransaction",
    "CreditTransactionType",
    "Message",
    "MessageRating",
    "MessageRole",
    "NsfwTendency",
    "Scene",
    "User",
    "UserCharacterMemory",
    "UserPersona",
    "UserProfile",
]
