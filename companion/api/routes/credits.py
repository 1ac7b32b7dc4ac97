"""
Credit Routes - balance and recent ledger entries for the caller.
"""
from fastapi import APIRouter, Depends, Query

from companion.api.dependencies import get_credit_ledger, get_request_context
from companion.core.context import RequestContext
from companion.models.chat import CreditsResponse, CreditTransactionOut, ErrorResponse
from companion.services.credits import CreditLedger

router = APIRouter(
    prefix="/credits",
    tags=["Credits"],
    responses={401: {"model": ErrorResponse, "description": "Missing user identity"}},
)


@router.get("", response_model=CreditsResponse, summary="Credit balance and history")
def get_credits(
    limit: int = Query(default=20, ge=1, le=100),
    context: RequestContext = Depends(get_request_context),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> CreditsResponse:
    user_id = context.require_user()
    return CreditsResponse(
        balance=ledger.balance(user_id),
        transactions=[CreditTransactionOut(**entry) for entry in ledger.history(user_id, limit)],
    )
