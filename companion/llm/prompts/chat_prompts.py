"""
Chat instruction prompts.

A session's system instruction has a static part, composed once from the
character and scene, and a dynamic part (long-term facts, last summary,
user preferences) that is re-rendered on every turn and after every
summarization. The static part is kept as an InstructionTemplate with the
text before and after the dynamic slot, so rendering is concatenation and
never a search-and-replace on the persona text.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from companion.database.models import NsfwTendency

DYNAMIC_SLOT_MARKER = "<{{DYNAMIC_INSTRUCTION}}>"

NSFW_POLICY = {
    NsfwTendency.NONE: "Strictly avoid all NSFW, mature, or suggestive topics.",
    NsfwTendency.LOW: "You can subtly hint at mature or romantic themes but must avoid explicit content.",
    NsfwTendency.MEDIUM: (
        "You can be direct with mature themes and use suggestive language, "
        "but avoid being overly graphic."
    ),
    NsfwTendency.HIGH: (
        "You are permitted to engage in explicit and graphic mature themes, "
        "following the user's lead."
    ),
}

REPLY_FIELD = "reply"
MEMORY_FIELD = "userCharacterMemory"


@dataclass(frozen=True)
class InstructionTemplate:
    """
    Static instruction text split around the dynamic slot.

    Attributes:
        head: Identity, persona and scene sections
        tail: Output format and final rules
    """
    head: str
    tail: str

    def render(self, dynamic_block: str) -> str:
        """Return the full instruction with dynamic_block in the slot."""
        parts = [self.head.rstrip()]
        if dynamic_block.strip():
            parts.append(dynamic_block.strip())
        parts.append(self.tail.lstrip())
        return "\n\n".join(parts)

    def placeholder_text(self) -> str:
        """The template with a visible slot marker, for display and debugging."""
        return f"{self.head.rstrip()}\n\n{DYNAMIC_SLOT_MARKER}\n\n{self.tail.lstrip()}"

    def to_dict(self) -> Dict[str, str]:
        return {"head": self.head, "tail": self.tail}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstructionTemplate":
        return cls(head=data.get("head", ""), tail=data.get("tail", ""))


def nsfw_policy_sentence(tendency: Optional[NsfwTendency]) -> str:
    """Content-style sentence for a tendency; unknown values get the strictest."""
    try:
        return NSFW_POLICY[NsfwTendency(tendency)]
    except (ValueError, TypeError):
        return NSFW_POLICY[NsfwTendency.NONE]


def compose(character, scene=None) -> InstructionTemplate:
    """
    Compose the static instruction template for a session.

    Args:
        character: Character row (name, system_instruction, ai_tone, nsfw_tendency)
        scene: Optional Scene row (title, scene_instruction)

    Returns:
        InstructionTemplate; a pure function of its inputs
    """
    persona_lines = [
        f'You must act as the character "{character.name}".',
        f"- Character's Core Instructions: {character.system_instruction}",
    ]
    if character.ai_tone:
        persona_lines.append(f"- Character's Tone: {character.ai_tone}")
    persona_lines.append(
        f"- Content Style (NSFW Tendency): {nsfw_policy_sentence(character.nsfw_tendency)}"
    )

    if scene is not None:
        scene_block = (
            "# Current Scene Context\n"
            "You and the user are currently in the following scene. "
            "Your responses must be grounded in this context.\n"
            f"- Scene Title: {scene.title}\n"
            f"- Your Role & Instructions for this Scene: {scene.scene_instruction}"
        )
    else:
        scene_block = (
            "# Scene Context\n"
            "There is no specific scene. The conversation is open-ended."
        )

    head = "\n\n".join([
        "# Core Identity\n"
        "You are an AI companion. Your primary goal is to engage the user in a "
        "compelling, immersive, and entertaining conversation.",
        "# Character Persona\n" + "\n".join(persona_lines),
        scene_block,
    ])

    tail = "\n\n".join([
        "# Response Rules & Output Format\n"
        "- CRITICAL: Your entire response MUST be a single, valid JSON object. "
        "Do not add any text outside of the JSON structure.\n"
        f'- The JSON object must have exactly two keys: "{REPLY_FIELD}" and "{MEMORY_FIELD}".\n'
        f'- "{REPLY_FIELD}" is your in-character response.\n'
        f'- "{MEMORY_FIELD}" is one new, durable fact you learned about the user '
        "in their latest message, or an empty string if there is none.\n"
        f'- Example format: {{"{REPLY_FIELD}": "Your in-character response goes here.", '
        f'"{MEMORY_FIELD}": "A new fact I learned about the user."}}',
        "# Final Rules\n"
        "- NEVER break character. Do not reveal that you are an AI or language model.\n"
        "- Your responses should be natural and conversational, consistent with "
        f'the persona of "{character.name}".',
    ])

    return InstructionTemplate(head=head, tail=tail)


def preferred_name(profile, fallback: Optional[str] = None) -> Optional[str]:
    """Preferred name, then full name, then fallback."""
    if profile is not None:
        if profile.preferred_name:
            return profile.preferred_name
        if profile.full_name:
            return profile.full_name
    return fallback


def _persona_lines(persona, profile) -> List[str]:
    lines = []
    name = preferred_name(profile)
    if name:
        lines.append(f"- User's Preferred Name: {name}")
    if persona is None:
        return lines
    if persona.interests:
        lines.append(f"- User's Interests (Incorporate these naturally): {persona.interests}")
    if persona.user_goals:
        lines.append(f"- User's Goal for this chat: {persona.user_goals}")
    if persona.communication_style:
        lines.append(f"- User's Preferred Communication Style: {persona.communication_style}")
    if persona.ai_tone:
        lines.append(f"- User's Preferred Tone to be spoken to in: {persona.ai_tone}")
    if persona.excluded_topics:
        lines.append(
            f"- CRITICAL: Absolutely avoid discussing these topics: "
            f"{persona.excluded_topics}. This is a strict boundary."
        )
    return lines


def render_dynamic_block(
    long_term_facts: Sequence[str],
    last_summary: Optional[str],
    persona=None,
    profile=None,
) -> str:
    """
    Render the per-turn personalization section.

    Args:
        long_term_facts: Facts remembered about the user for this character
        last_summary: Rolling summary, included only when present
        persona: Optional UserPersona row
        profile: Optional UserProfile row (for the preferred name)

    Returns:
        Text placed into the template's dynamic slot. Preference lines exist
        only for populated fields; the section is dropped when none are.
    """
    facts = ", ".join(f for f in long_term_facts if f and f.strip())
    sections = [
        "# Long-Term Memory\n"
        "You have remembered the following key facts about the user. "
        "Weave them into the conversation naturally.\n"
        f"- Facts: {facts or 'None yet.'}"
    ]

    if last_summary and last_summary.strip():
        sections.append(
            "# Previous Conversation Summary\n"
            "Here is a summary of your conversation with the user so far. "
            "Use it to maintain context.\n"
            f"- Summary: {last_summary.strip()}"
        )

    lines = _persona_lines(persona, profile)
    if lines:
        sections.append(
            "# User Profile & Preferences\n"
            "Tailor your conversation to the following user preferences. This is "
            "about *how* you interact with them as your character.\n" + "\n".join(lines)
        )

    return "\n\n".join(sections)
