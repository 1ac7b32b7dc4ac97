"""
Prompts for the auxiliary one-shot tasks: summaries, titles, scene opening
lines and memory extraction.
"""
import json
from typing import Optional, Sequence


def format_transcript(messages: Sequence) -> str:
    """Render messages as 'ROLE: content' lines."""
    return "\n".join(f"{m.role.value}: {m.content}" for m in messages)


def get_summary_prompt(transcript: str, existing_summary: Optional[str] = None) -> str:
    previous = (
        f'The conversation had a previous summary, which is: "{existing_summary}"\n'
        if existing_summary else ""
    )
    return (
        "You are a conversation summarizer.\n"
        f"{previous}"
        "Based on the previous summary (if any) and the latest messages, create a new, "
        "concise, and neutral summary of the entire conversation.\n"
        "This summary will be used as long-term memory for an AI, so focus on factual "
        "information and significant conversational turns.\n\n"
        f"Conversation:\n{transcript}"
    )


TITLE_SYSTEM_PROMPT = """- you will generate a short title based on the first message a user begins a conversation with
- ensure it is not more than 80 characters long
- the title should be a summary of the user's message
- do not use quotes or colons"""


def get_title_prompt(messages: Sequence) -> str:
    payload = [{"role": m.role.value, "content": m.content} for m in messages]
    return f"chat: {json.dumps(payload, ensure_ascii=False)}"


def get_opening_line_prompt(character, scene, user_name: str) -> str:
    return (
        f'You are the character "{character.name}". Your Instructions are: '
        f"{character.system_instruction}. You are starting a conversation with a user "
        f'in the following scene: "{scene.title}". Your instructions for this scene are: '
        f'"{scene.scene_instruction}". User preferred name is: {user_name}. Write a single, '
        "compelling opening line to say to the user to kick off the conversation based on "
        "your character and the scene. Do not add quotes around your response. Your response "
        "should be a direct statement from you, as the character."
    )


def get_memory_extraction_prompt(
    character_name: str,
    transcript: str,
    known_facts: Sequence[str],
) -> str:
    known = "\n".join(f"- {fact}" for fact in known_facts) or "- (none)"
    return (
        f"You maintain long-term memory for the character \"{character_name}\".\n"
        "Read the conversation below and list durable facts about the USER "
        "(name, preferences, life events, relationships, goals). Ignore facts about "
        "the character and anything temporary.\n"
        "Do not repeat facts that are already known:\n"
        f"{known}\n\n"
        "Respond with a JSON array of short strings and nothing else. "
        "Respond with [] if there is nothing new.\n\n"
        f"Conversation:\n{transcript}"
    )
