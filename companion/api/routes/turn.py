"""
Turn Routes - API endpoint for conversation turns.

POST /turn sends one user message to a chat and returns the character's
reply. Errors use the common error body and always carry is_new_session.
"""
from fastapi import APIRouter, Depends

from companion.api.dependencies import get_conversation_engine, get_request_context
from companion.core.context import RequestContext
from companion.core.logging_config import get_logger
from companion.models.chat import ErrorResponse, TurnRequest, TurnResponse
from companion.services.conversation import ConversationEngine

logger = get_logger(__name__)

router = APIRouter(
    prefix="/turn",
    tags=["Conversation"],
    responses={
        401: {"model": ErrorResponse, "description": "Missing user identity"},
        402: {"model": ErrorResponse, "description": "Not enough credits"},
        404: {"model": ErrorResponse, "description": "Chat not found"},
        429: {"model": ErrorResponse, "description": "AI backend rate limited"},
        502: {"model": ErrorResponse, "description": "AI backend returned nothing"},
    }
)


@router.post(
    "",
    response_model=TurnResponse,
    summary="Send a message to a character",
    description="""
    Send one message in an existing chat.

    The turn is refused with 402 before any generation when the estimated
    cost (1 credit per 1000 tokens, minimum 1) exceeds the balance.
    On success both messages and the credit debit are stored together.
    """
)
def send_turn(
    request: TurnRequest,
    context: RequestContext = Depends(get_request_context),
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> TurnResponse:
    result = engine.send_turn(context, request.session_id, request.user_text)
    return TurnResponse(
        reply_text=result.reply_text,
        is_new_session=result.is_new_session,
        memory_fact=result.memory_fact,
    )
