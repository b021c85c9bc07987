"""
LLM Provider Factory
"""
from django.conf import settings

from .base import LLMProvider
from .openai_compatible import OpenAICompatibleProvider


def get_llm_provider(provider_name: str, api_key: str, model: str = None, **overrides) -> LLMProvider:
    """
    Build a provider client for one request.

    Args:
        provider_name: Key of settings.AI_PROVIDERS (e.g. 'openai', 'aliyun')
        api_key: Plaintext API key for the provider
        model: Model name; defaults to the provider's configured default
        **overrides: Constructor overrides (e.g. ``transport`` in tests)

    Returns:
        Initialized LLM provider instance

    Examples:
        provider = get_llm_provider('aliyun', api_key)

        async for chunk in provider.stream_chat(messages=[...]):
            print(chunk.content)
    """
    config = settings.AI_PROVIDERS.get(provider_name)
    if config is None:
        raise ValueError(f"Unknown provider: {provider_name}")

    options = {
        'timeout': settings.AI_REQUEST_TIMEOUT,
        'chunk_size': settings.AI_STREAM_CHUNK_SIZE,
        'flush_interval': settings.AI_STREAM_FLUSH_INTERVAL,
    }
    options.update(overrides)

    return OpenAICompatibleProvider(
        api_key=api_key,
        model=model or config['default_model'],
        base_url=config['base_url'],
        name=provider_name,
        **options,
    )
