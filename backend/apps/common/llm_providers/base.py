"""
Base LLM Provider interface
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from .utils import stream_and_collect


@dataclass
class StreamChunk:
    """Standardized chunk format across providers"""
    content: str
    finish_reason: Optional[str] = None


class ProviderError(Exception):
    """Transport-level failure talking to a completion provider.

    Covers connection errors, timeouts and non-2xx responses. Fatal for the
    request it happened in.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    name = "base"

    def __init__(self, api_key: str, model: str):
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def stream_chat(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream chat completion chunks

        Args:
            messages: List of message dicts with 'role' and 'content'
            system_prompt: Optional system prompt
            **kwargs: Extra request body fields (temperature, max_tokens, etc.)

        Yields:
            StreamChunk objects with incremental content

        Raises:
            ProviderError: on connection failure or a non-2xx response
        """
        pass

    async def generate(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> str:
        """Non-streaming completion built on top of ``stream_chat``."""
        return await stream_and_collect(self, messages, system_prompt=system_prompt, **kwargs)
