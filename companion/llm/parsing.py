"""
Parsing of model output.

The conversation model is asked for {"reply", "userCharacterMemory"}; when
it answers with anything else the raw text becomes the reply so the user
never loses a response because of a formatting slip.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from companion.core.logging_config import get_logger

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


class StructuredReply(BaseModel):
    """Schema of a well-formed conversation turn."""
    reply: str = Field(..., min_length=1)
    userCharacterMemory: Optional[str] = ""

    @field_validator("reply")
    @classmethod
    def reply_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("reply is blank")
        return value

    @field_validator("userCharacterMemory", mode="before")
    @classmethod
    def memory_must_be_text(cls, value: Any) -> str:
        # Non-text memory is dropped, the reply is kept
        if not isinstance(value, str):
            if value is not None:
                logger.warning(f"Ignoring non-text memory field ({type(value).__name__})")
            return ""
        return value


@dataclass
class ParsedReply:
    """
    Outcome of parsing one turn.

    Attributes:
        reply: Text shown to the user
        memory_fact: New fact, or None when absent/empty/unparsed
        structured: False when the raw text was used as-is
    """
    reply: str
    memory_fact: Optional[str]
    structured: bool


def strip_code_fence(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def parse_turn_reply(raw: str) -> ParsedReply:
    """
    Parse a structured reply, degrading to the raw text on any mismatch.

    Args:
        raw: Text returned by the backend

    Returns:
        ParsedReply
    """
    candidate = strip_code_fence(raw.strip())
    try:
        parsed = StructuredReply.model_validate_json(candidate)
    except ValidationError:
        logger.warning(
            f"Reply was not valid structured JSON, using raw text "
            f"(length={len(raw)})"
        )
        return ParsedReply(reply=raw.strip(), memory_fact=None, structured=False)

    memory = (parsed.userCharacterMemory or "").strip() or None
    return ParsedReply(reply=parsed.reply.strip(), memory_fact=memory, structured=True)


def parse_fact_list(raw: str) -> List[str]:
    """
    Parse a JSON array of fact strings; anything else yields no facts.
    """
    candidate = strip_code_fence((raw or "").strip())
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Memory extraction answer was not JSON, ignoring it")
        return []
    if not isinstance(data, list):
        return []
    return [item.strip() for item in data if isinstance(item, str) and item.strip()]
