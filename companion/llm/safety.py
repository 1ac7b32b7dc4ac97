"""
Content-safety thresholds derived from a character's NSFW tendency.

This is the single table every backend call goes through. The mapping is
strictly monotonic: NONE blocks the most, HIGH blocks the least.
"""
from typing import Dict, List, Union

from google.generativeai.types import HarmBlockThreshold, HarmCategory

from companion.database.models import NsfwTendency

SAFETY_CATEGORIES: List[HarmCategory] = [
    HarmCategory.HARM_CATEGORY_HARASSMENT,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
]

NSFW_THRESHOLDS: Dict[NsfwTendency, HarmBlockThreshold] = {
    NsfwTendency.NONE: HarmBlockThreshold.BLOCK_LOW_AND_ABOVE,
    NsfwTendency.LOW: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    NsfwTendency.MEDIUM: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    NsfwTendency.HIGH: HarmBlockThreshold.BLOCK_NONE,
}

# Higher rank = more permissive
THRESHOLD_RANK: Dict[HarmBlockThreshold, int] = {
    HarmBlockThreshold.BLOCK_LOW_AND_ABOVE: 0,
    HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE: 1,
    HarmBlockThreshold.BLOCK_ONLY_HIGH: 2,
    HarmBlockThreshold.BLOCK_NONE: 3,
}


def threshold_for(tendency: Union[NsfwTendency, str, None]) -> HarmBlockThreshold:
    """Return the block threshold for a tendency; unknown values get the strictest."""
    if tendency is None:
        return NSFW_THRESHOLDS[NsfwTendency.NONE]
    try:
        return NSFW_THRESHOLDS[NsfwTendency(tendency)]
    except ValueError:
        return NSFW_THRESHOLDS[NsfwTendency.NONE]


def safety_settings_for(tendency: Union[NsfwTendency, str, None]) -> Dict[HarmCategory, HarmBlockThreshold]:
    """
    Build the Gemini safety_settings mapping for a character.

    Args:
        tendency: The character's NSFW tendency

    Returns:
        Dict of harm category -> block threshold, same threshold for all
    """
    threshold = threshold_for(tendency)
    return {category: threshold for category in SAFETY_CATEGORIES}
