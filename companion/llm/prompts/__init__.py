"""
Prompts module - LLM prompt templates.

Prompts are stored as separate Python files:
- chat_prompts.py : session instruction template and dynamic block
- task_prompts.py : summaries, titles, opening lines, memory extraction
"""
from companion.llm.prompts.chat_prompts import (
    DYNAMIC_SLOT_MARKER,
    InstructionTemplate,
    compose,
    preferred_name,
    render_dynamic_block,
)
from companion.llm.prompts.task_prompts import (
    TITLE_SYSTEM_PROMPT,
    format_transcript,
    get_memory_extraction_prompt,
    get_opening_line_prompt,
    get_summary_prompt,
    get_title_prompt,
)

__all__ = [
    "DYNAMIC_SLOT_MARKER",
    "InstructionTemplate",
    "compose",
    "preferred_name",
    "render_dynamic_block",
    "TITLE_SYSTEM_PROMPT",
    "format_transcript",
    "get_memory_extraction_prompt",
    "get_opening_line_prompt",
    "get_summary_prompt",
    "get_title_prompt",
]
