"""
Memory Store - long-term facts per (user, character).

Facts are an ordered list of unique strings stored in one row per pair.
Every operation runs in its own transaction, so a failure leaves the list
exactly as it was.

Why a single JSON list per pair:
1. Order matters - facts are rendered into prompts in insertion order
2. The list is small and always read whole
3. Create-or-merge is one row upsert
"""
from typing import Callable, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from companion.core.exceptions import NotFoundError
from companion.core.logging_config import get_logger
from companion.core.validators import validate_fact
from companion.database.connection import DatabaseConnection
from companion.database.models import Character, UserCharacterMemory
from companion.database import repository

logger = get_logger(__name__)


class MemoryStore:
    """
    CRUD over the fact list of a (user, character) pair.

    Example:
        >>> store = MemoryStore(db)
        >>> store.add(user_id, character_id, "Has a dog named Rex")
        >>> store.list(user_id, character_id)
        ['Has a dog named Rex']
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def list(self, user_id: str, character_id: str) -> List[str]:
        """Ordered facts; empty when nothing is stored yet."""
        with self.db.get_session() as db_session:
            return repository.get_memory_facts(db_session, user_id, character_id)

    def add(self, user_id: str, character_id: str, fact: str) -> List[str]:
        """
        Append a fact unless it is already stored.

        Raises:
            ValidationError: If the fact is empty or whitespace
            NotFoundError: If the character does not exist

        Returns:
            The updated fact list
        """
        fact = validate_fact(fact)

        def apply(facts: List[str]) -> List[str]:
            return facts if fact in facts else facts + [fact]

        return self._mutate(user_id, character_id, apply, create=True)

    def update(self, user_id: str, character_id: str, old_fact: str, new_fact: str) -> List[str]:
        """
        Replace old_fact with new_fact at the same position.

        Raises:
            ValidationError: If new_fact is empty
            NotFoundError: If old_fact is not stored
        """
        new_fact = validate_fact(new_fact, field="new_fact")

        def apply(facts: List[str]) -> List[str]:
            if old_fact not in facts:
                raise NotFoundError("Memory not found.", details=f"fact={old_fact[:50]}")
            index = facts.index(old_fact)
            if new_fact in facts and new_fact != old_fact:
                # Already remembered elsewhere: drop the old entry
                return facts[:index] + facts[index + 1:]
            return facts[:index] + [new_fact] + facts[index + 1:]

        return self._mutate(user_id, character_id, apply)

    def delete(self, user_id: str, character_id: str, fact: str) -> List[str]:
        """
        Remove a fact.

        Raises:
            NotFoundError: If the fact is not stored
        """
        def apply(facts: List[str]) -> List[str]:
            if fact not in facts:
                raise NotFoundError("Memory not found.", details=f"fact={fact[:50]}")
            return [f for f in facts if f != fact]

        return self._mutate(user_id, character_id, apply)

    def reset(self, user_id: str, character_id: str) -> None:
        """Forget everything for the pair. Idempotent."""
        with self.db.get_session() as db_session:
            record = repository.get_memory_record(db_session, user_id, character_id, for_update=True)
            if record is not None:
                record.memories = []
        logger.info(f"Memories reset: user={user_id}, character={character_id}")

    def merge_from_conversation(
        self,
        user_id: str,
        character_id: str,
        candidates: Iterable[str],
    ) -> List[str]:
        """
        Merge automatically extracted facts.

        Blank candidates are dropped, duplicates (within the batch or against
        stored facts) ignored, new facts appended in order.

        Returns:
            The facts that were actually added
        """
        cleaned: List[str] = []
        for candidate in candidates:
            if not isinstance(candidate, str):
                continue
            fact = candidate.strip()
            if fact and fact not in cleaned:
                cleaned.append(fact)
        if not cleaned:
            return []

        added: List[str] = []

        def apply(facts: List[str]) -> List[str]:
            known = set(facts)
            for fact in cleaned:
                if fact not in known:
                    known.add(fact)
                    added.append(fact)
            return facts + added

        self._mutate(user_id, character_id, apply, create=True)
        if added:
            logger.info(
                f"Merged {len(added)} new memories: user={user_id}, character={character_id}"
            )
        return added

    def characters_with_memories(self, user_id: str) -> List[dict]:
        """Characters for which the user has at least one stored fact."""
        with self.db.get_session() as db_session:
            stmt = (
                select(Character, UserCharacterMemory.memories)
                .join(UserCharacterMemory, UserCharacterMemory.character_id == Character.id)
                .where(UserCharacterMemory.user_id == user_id)
                .order_by(UserCharacterMemory.updated_at.desc())
            )
            return [
                {"character_id": character.id, "name": character.name, "memory_count": len(memories)}
                for character, memories in db_session.execute(stmt)
                if memories
            ]

    # ==================== HELPERS ====================

    def _mutate(
        self,
        user_id: str,
        character_id: str,
        apply: Callable[[List[str]], List[str]],
        create: bool = False,
    ) -> List[str]:
        with self.db.get_session() as db_session:
            record = self._load(db_session, user_id, character_id, create)
            current = list(record.memories or []) if record is not None else []
            updated = apply(current)
            if record is not None and updated != current:
                # Assign a new list so the JSON column is flagged dirty
                record.memories = list(updated)
            return updated

    @staticmethod
    def _load(
        db_session: Session,
        user_id: str,
        character_id: str,
        create: bool,
    ) -> Optional[UserCharacterMemory]:
        record = repository.get_memory_record(db_session, user_id, character_id, for_update=True)
        if record is None and create:
            if repository.get_character(db_session, character_id) is None:
                raise NotFoundError("Character not found", details=f"character_id={character_id}")
            record =UserCharacterMemory(user_id=user_id, character_id=character_id, memories=[])
            db_session.add(record)
        return record
