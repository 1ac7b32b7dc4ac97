"""
Models module - Pydantic schemas for data validation.

This module defines:
- Request models: Input validation for API endpoints
- Response models: Output formatting for API responses
- MessageFeedback: also used by the session service to validate feedback
"""
from companion.models.chat import (
    CharacterMemorySummary,
    CreditsResponse,
    CreditTransactionOut,
    ErrorResponse,
    HealthResponse,
    MemoryFactRequest,
    MemoryListResponse,
    MemoryResetRequest,
    MemoryUpdateRequest,
    MessageFeedback,
    MessageOut,
    RatingRequest,
    ReadinessResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionDetail,
    SessionListItem,
    TitleUpdateRequest,
    TurnRequest,
    TurnResponse,
)

__all__ = [
    "CharacterMemorySummary",
    "CreditsResponse",
    "CreditTransactionOut",
    "ErrorResponse",
    "HealthResponse",
    "MemoryFactRequest",
    "MemoryListResponse",
    "MemoryResetRequest",
    "MemoryUpdateRequest",
    "MessageFeedback",
    "MessageOut",
    "RatingRequest",
    "ReadinessResponse",
    "SessionCreateRequest",
    "SessionCreateResponse",
    "SessionDetail",
    "SessionListItem",
    "TitleUpdateRequest",
    "TurnRequest",
    "TurnResponse",
]
