"""
API Routes module - Endpoint definitions.

Each file in this module defines routes for a specific domain:
- turn.py     : Conversation turns
- sessions.py : Chat lifecycle, ratings and feedback
- memory.py   : Long-term memory management
- credits.py  : Credit balance and ledger
- health.py   : Health check endpoints
"""
from companion.api.routes.credits import router as credits_router
from companion.api.routes.health import router as health_router
from companion.api.routes.memory import router as memory_router
from companion.api.routes.sessions import router as sessions_router
from companion.api.routes.turn import router as turn_router

__all__ = [
    "credits_router",
    "health_router",
    "memory_router",
    "sessions_router",
    "turn_router",
]
