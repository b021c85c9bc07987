"""
System prompts for text processing intents
"""
from apps.ai.models import Intent

SYSTEM_PROMPTS = {
    Intent.REWRITE: (
        "You are a writing assistant. Rewrite the user's text so it reads "
        "clearly and fluently. Keep the original meaning, language and "
        "roughly the same length. Return only the rewritten text."
    ),
    Intent.EXPAND: (
        "You are a writing assistant. Expand the user's text with relevant "
        "detail, examples and explanation while keeping its tone and "
        "language. Return only the expanded text."
    ),
    Intent.SUMMARIZE: (
        "You are a writing assistant. Summarize the user's text concisely, "
        "keeping the key points, in the same language as the text. Return "
        "only the summary."
    ),
}


def get_system_prompt(intent: str) -> str:
    """
    Return the system instruction for an intent.

    Raises:
        ValueError: unknown intent
    """
    try:
        return SYSTEM_PROMPTS[Intent(intent)]
    except ValueError:
        raise ValueError(f"Unknown intent: {intent}") from None
