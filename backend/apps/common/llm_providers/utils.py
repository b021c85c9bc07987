"""
Shared utilities for LLM interactions.
"""
import logging

logger = logging.getLogger(__name__)


async def stream_and_collect(provider, messages: list, system_prompt: str = None, **kwargs) -> str:
    """
    Stream an LLM response and collect the full text.

    Args:
        provider: LLM provider instance (from get_llm_provider)
        messages: List of message dicts [{"role": "user", "content": "..."}]
        system_prompt: System prompt string

    Returns:
        Full response text
    """
    full_response = ""
    async for chunk in provider.stream_chat(
        messages=messages,
        system_prompt=system_prompt,
        **kwargs
    ):
        full_response += chunk.content
    return full_response
