"""
LLM Provider abstraction for OpenAI-compatible streaming endpoints
"""
from .base import LLMProvider, ProviderError, StreamChunk
from .factory import get_llm_provider
from .openai_compatible import OpenAICompatibleProvider
from .streaming import DecoderState, StreamDecoder, extract_delta
from .utils import stream_and_collect

__all__ = [
    'LLMProvider',
    'ProviderError',
    'StreamChunk',
    'get_llm_provider',
    'OpenAICompatibleProvider',
    'DecoderState',
    'StreamDecoder',
    'extract_delta',
    'stream_and_collect',
]
