"""
Services module - Business logic layer.

Services orchestrate operations between API routes and lower layers:
- conversation.py      : one user turn, end to end
- session_lifecycle.py : create / resume / title / delete chats
- credits.py           : credit balance and ledger
- token_estimator.py   : token counting and credit cost
"""
from companion.services.conversation import ConversationEngine, TurnResult
from companion.services.credits import CreditLedger
from companion.services.session_lifecycle import SessionLifecycle
from companion.services.token_estimator import TokenCostEstimator, credit_cost, fallback_estimate

__all__ = [
    "ConversationEngine",
    "TurnResult",
    "CreditLedger",
    "SessionLifecycle",
    "TokenCostEstimator",
    "credit_cost",
    "fallback_estimate",
]
