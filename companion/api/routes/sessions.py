"""
Session Management Routes - API endpoints for the chat lifecycle.

Endpoints:
- POST   /sessions                                 : Start a chat
- GET    /sessions?character_id=                   : List chats (recent when no character)
- GET    /sessions/{id}                            : Resume a chat with its messages
- PATCH  /sessions/{id}/title                      : Rename a chat
- DELETE /sessions/{id}                            : Delete a chat
- POST   /sessions/messages/{message_id}/rating    : Rate a message
- POST   /sessions/messages/{message_id}/feedback  : Written feedback on a message
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from companion.api.dependencies import get_request_context, get_session_lifecycle
from companion.core.context import RequestContext
from companion.core.logging_config import get_logger
from companion.models.chat import (
    ErrorResponse,
    MessageFeedback,
    MessageOut,
    RatingRequest,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionDetail,
    SessionListItem,
    TitleUpdateRequest,
)
from companion.services.session_lifecycle import SessionLifecycle

logger = get_logger(__name__)

router = APIRouter(
    prefix="/sessions",
    tags=["Session Management"],
    responses={
        401: {"model": ErrorResponse, "description": "Missing user identity"},
        404: {"model": ErrorResponse, "description": "Not found"},
    }
)


@router.post(
    "",
    response_model=SessionCreateResponse,
    summary="Start a chat",
    description="Create a chat with a character, optionally inside a scene."
)
def create_session(
    request: SessionCreateRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
) -> SessionCreateResponse:
    chat = lifecycle.create(context, request.character_id, request.scene_id)
    return SessionCreateResponse(session_id=chat.id, opening_message=chat.opening_message)


@router.get(
    "",
    response_model=List[SessionListItem],
    summary="List chats",
    description="""
    With character_id: chats with that character that have messages,
    newest first (up to 30). Without: the 10 most recent chats.
    """
)
def list_sessions(
    character_id: Optional[str] = Query(default=None),
    context: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
) -> List[SessionListItem]:
    if character_id:
        items = lifecycle.list_for_character(context, character_id)
    else:
        items = lifecycle.recent(context)
    return [SessionListItem(**item) for item in items]


@router.get(
    "/{session_id}",
    response_model=SessionDetail,
    summary="Resume a chat"
)
def resume_session(
    session_id: str,
    context: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
) -> SessionDetail:
    chat = lifecycle.resume(context, session_id)
    return SessionDetail(
        **chat.to_dict(),
        messages=[MessageOut(**m.to_dict()) for m in chat.messages],
    )


@router.patch(
    "/{session_id}/title",
    response_model=SessionListItem,
    summary="Rename a chat"
)
def rename_session(
    session_id: str,
    request: TitleUpdateRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
) -> SessionListItem:
    chat = lifecycle.rename(context, session_id, request.title)
    return SessionListItem(
        id=chat.id,
        character_id=chat.character_id,
        title=chat.title,
        last_message_at=chat.last_message_at,
    )


@router.delete(
    "/{session_id}",
    summary="Delete a chat",
    description="Delete a chat and all of its messages."
)
def delete_session(
    session_id: str,
    context: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
) -> dict:
    lifecycle.delete(context, session_id)
    return {"session_id": session_id, "deleted": True}


@router.post(
    "/messages/{message_id}/rating",
    response_model=MessageOut,
    summary="Rate a message"
)
def rate_message(
    message_id: int,
    request: RatingRequest,
    context: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
) -> MessageOut:
    return MessageOut(**lifecycle.rate_message(context, message_id, request.rating))


@router.post(
    "/messages/{message_id}/feedback",
    response_model=MessageOut,
    summary="Send feedback on a message"
)
def submit_feedback(
    message_id: int,
    request: MessageFeedback,
    context: RequestContext = Depends(get_request_context),
    lifecycle: SessionLifecycle = Depends(get_session_lifecycle),
) -> MessageOut:
    return MessageOut(
        **lifecycle.submit_feedback(context, message_id, request.tags, request.details)
    )
