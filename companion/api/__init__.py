"""
API module - FastAPI routes and HTTP handling.

This module handles:
- Caller identity (X-User-Id) and service wiring
- Request validation and response formatting
- Error handling
- Route definitions
"""
from companion.api.main import app

__all__ = ["app"]
