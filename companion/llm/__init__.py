"""
LLM module - Language model integration.

This module handles all LLM interactions:
- Prompt construction (prompts/)
- Safety thresholds per character (safety.py)
- API calls to Gemini / Groq (client.py)
- Response parsing (parsing.py)
"""
from companion.llm.client import LLMClient, TurnReplySchema
from companion.llm.parsing import ParsedReply, parse_fact_list, parse_turn_reply
from companion.llm.safety import safety_settings_for, threshold_for

__all__ = [
    "LLMClient",
    "TurnReplySchema",
    "ParsedReply",
    "parse_fact_list",
    "parse_turn_reply",
    "safety_settings_for",
    "threshold_for",
]
