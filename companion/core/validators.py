"""
Input Validators - Sanitization and validation utilities.

Validation helpers for the text users send to the engine:
- Chat messages
- Memory facts
- Session titles

Unlike the raw checks, these raise ValidationError directly so services
can call them inline.
"""
import re

from companion.core.exceptions import ValidationError

MAX_FACT_LENGTH = 500
MAX_TITLE_LENGTH = 150


def sanitize_text(text: str) -> str:
    """
    Remove null bytes and surrounding whitespace.

    Inner whitespace (including newlines) is kept: role-play messages use
    line breaks deliberately.
    """
    if not text:
        return ""
    return text.replace("\x00", "").strip()


def validate_message(message: str, max_length: int = 4000) -> str:
    """
    Validate and sanitize a chat message.

    Args:
        message: Raw user message
        max_length: Maximum allowed length

    Returns:
        Sanitized message

    Raises:
        ValidationError: If the message is empty or too long
    """
    sanitized = sanitize_text(message)
    if not sanitized:
        raise ValidationError("Message cannot be empty", field="user_text")
    if len(sanitized) > max_length:
        raise ValidationError(
            f"Message too long (max {max_length} characters)", field="user_text"
        )
    return sanitized


def validate_fact(fact: str, field: str = "fact") -> str:
    """Validate a memory fact; returns the stripped fact."""
    cleaned = sanitize_text(fact)
    if not cleaned:
        raise ValidationError("Memory cannot be empty.", field=field)
    if len(cleaned) > MAX_FACT_LENGTH:
        raise ValidationError(
            f"Memory cannot be longer than {MAX_FACT_LENGTH} characters.", field=field
        )
    return cleaned


def validate_title(title: str) -> str:
    """Validate a user-supplied session title."""
    trimmed = sanitize_text(title)
    if not trimmed:
        raise ValidationError("Title cannot be empty.", field="title")
    if len(trimmed) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title cannot be longer than {MAX_TITLE_LENGTH} characters.", field="title"
        )
    return trimmed


def clean_generated_title(raw: str, max_length: int = 80) -> str:
    """
    Normalize a model-generated title.

    Quotes and colons are removed, whitespace collapsed and the result
    clamped to max_length characters.
    """
    cleaned = re.sub(r"[\"'`:“”‘’]", "", raw or "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:max_length].rstrip()
