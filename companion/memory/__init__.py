"""
Memory Package - what the companion remembers about a user.

## Long-term facts (MemoryStore)
- One ordered, de-duplicated list per (user, character)
- Edited by the user, or merged from conversations in the background

## Rolling summary (SessionSummarizer)
- One summary per chat, refreshed on a message cadence
- Feeds the dynamic block of the system instruction

Example:
    >>> from companion.memory import MemoryStore
    >>> store = MemoryStore(get_database())
    >>> store.list(user_id, character_id)
"""
from companion.memory.extractor import MemoryExtractor
from companion.memory.store import MemoryStore
from companion.memory.summarizer import SessionSummarizer

__all__ = [
    "MemoryStore",
    "SessionSummarizer",
    "MemoryExtractor",
]
