"""
Request and Response models for the Companion API.

These Pydantic models define the contract between client and server.
They provide:
- Type validation
- Automatic documentation
- Request/response serialization

Text rules (empty message, fact length, title length) are enforced by the
services so that every caller gets the same 400 error body.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from companion.database.models import MessageRating


# ==================== TURNS ====================

class TurnRequest(BaseModel):
    """
    Request model for the /turn endpoint.

    Attributes:
        session_id: Chat the message belongs to
        user_text: The user's message
    """
    session_id: str = Field(
        ...,
        description="Chat session ID",
        examples=["7f7c1c1e-3b8a-4c65-9a51-1d2b0f7d0c11"]
    )
    user_text: str = Field(
        ...,
        description="The user's message",
        examples=["I just got back from Lisbon!"]
    )


class TurnResponse(BaseModel):
    """Response model for the /turn endpoint."""
    reply_text: str = Field(..., description="The character's reply")
    is_new_session: bool = Field(
        ...,
        description="True while the chat has at most two messages before this turn"
    )
    memory_fact: Optional[str] = Field(
        default=None,
        description="Fact the character learned from this message, if any"
    )


# ==================== SESSIONS ====================

class SessionCreateRequest(BaseModel):
    """Request model for starting a chat."""
    character_id: str = Field(..., description="Character to talk to")
    scene_id: Optional[str] = Field(default=None, description="Optional scene to start in")


class SessionCreateResponse(BaseModel):
    session_id: str
    opening_message: str


class MessageOut(BaseModel):
    id: int
    role: str
    content: str
    sent_at: Optional[datetime] = None
    rating: Optional[str] = None
    feedback: Optional[Dict[str, Any]] = None


class SessionDetail(BaseModel):
    """A chat with its ordered messages (resume view)."""
    id: str
    character_id: str
    scene_id: Optional[str] = None
    title: Optional[str] = None
    opening_message: str
    memory_summary: Optional[str] = None
    created_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    messages: List[MessageOut] = Field(default_factory=list)


class SessionListItem(BaseModel):
    """One row of a chat list."""
    id: str
    character_id: str
    character_name: Optional[str] = None
    title: Optional[str] = None
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None


class TitleUpdateRequest(BaseModel):
    title: str = Field(..., description="New chat title (1-150 characters)")


class RatingRequest(BaseModel):
    """Thumbs up / down on a message; null clears the rating."""
    rating: Optional[MessageRating] = Field(default=None, description="GOOD, BAD or null")


class MessageFeedback(BaseModel):
    """
    Written feedback on a message.

    At least one tag or some detail text is required.
    """
    tags: List[str] = Field(default_factory=list, max_length=10)
    details: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value: List[str]) -> List[str]:
        cleaned = []
        for tag in value:
            tag = tag.strip()
            if not tag:
                continue
            if len(tag) > 50:
                raise ValueError("tags must be at most 50 characters")
            if tag not in cleaned:
                cleaned.append(tag)
        return cleaned

    @field_validator("details")
    @classmethod
    def clean_details(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def not_empty(self) -> "MessageFeedback":
        if not self.tags and not self.details:
            raise ValueError("feedback needs at least one tag or details")
        return self


# ==================== MEMORY ====================

class MemoryFactRequest(BaseModel):
    """Add or delete one fact."""
    character_id: str
    fact: str


class MemoryUpdateRequest(BaseModel):
    character_id: str
    old_fact: str
    new_fact: str


class MemoryResetRequest(BaseModel):
    character_id: str


class MemoryListResponse(BaseModel):
    character_id: str
    facts: List[str] = Field(default_factory=list)


class CharacterMemorySummary(BaseModel):
    character_id: str
    name: str
    memory_count: int


# ==================== CREDITS ====================

class CreditTransactionOut(BaseModel):
    id: str
    amount: int
    type: str
    description: Optional[str] = None
    message_id: Optional[int] = None
    created_at: Optional[datetime] = None


class CreditsResponse(BaseModel):
    """Current balance with the most recent ledger entries."""
    balance: int
    transactions: List[CreditTransactionOut] = Field(default_factory=list)


# ==================== COMMON ====================

class HealthResponse(BaseModel):
    """Response model for the /health endpoint."""
    status: str = Field(default="healthy")
    version: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ReadinessResponse(BaseModel):
    status: str
    database: str


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str
    message: str
    details: Optional[str] = None
    is_new_session: Optional[bool] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
