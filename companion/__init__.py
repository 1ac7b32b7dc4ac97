"""
Companion chat backend.

This package contains the conversational engine organized by responsibility:
- api/       : FastAPI routes and HTTP handling
- core/      : Configuration, logging, errors, identity, background tasks
- services/  : Turn orchestration, session lifecycle, credits, token costs
- llm/       : Gemini/Groq client, safety mapping, prompt templates
- database/  : SQLAlchemy models and session management
- memory/    : Long-term facts, summaries and fact extraction
- models/    : Pydantic models for request/response schemas
"""

__version__ = "0.1.0"
