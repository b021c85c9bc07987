"""
Text processing service

Resolves which credentials to use for a user, streams the completion through
the provider layer and records one audit log row per provider attempt.
"""
import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings
from django.contrib.auth.models import User

from apps.ai.models import AIRequestLog, ApiKey, LogLevel
from apps.ai.prompts import get_system_prompt
from apps.common.encryption import DecryptionError
from apps.common.exceptions import MissingCredentialsError, ProviderRequestFailed
from apps.common.llm_providers import LLMProvider, ProviderError, get_llm_provider
from apps.common.logging_utils import elapsed_ms

logger = logging.getLogger(__name__)

BOTH_ATTEMPTS_FAILED = "AI processing failed with both the user and the default API key"


@dataclass(frozen=True)
class Credentials:
    """Plaintext credentials for one provider attempt"""
    provider: str
    model: str
    api_key: str
    source: str  # 'user' or 'default'

    def __repr__(self):
        return f"Credentials(provider={self.provider!r}, model={self.model!r}, source={self.source!r})"


def load_default_credentials() -> Optional[Credentials]:
    """
    Server-wide fallback credentials from ``settings.AI_DEFAULT_CREDENTIALS``.

    Returns None unless an API key is configured.
    """
    config = getattr(settings, 'AI_DEFAULT_CREDENTIALS', None) or {}
    api_key = config.get('api_key')
    if not api_key:
        return None

    provider = config.get('provider') or 'aliyun'
    model = config.get('model') or settings.AI_PROVIDERS[provider]['default_model']
    return Credentials(provider=provider, model=model, api_key=api_key, source='default')


class AuditLogService:
    """
    Append-only writes to the AI request log
    """

    @staticmethod
    def _request_payload(credentials: Credentials, text: str) -> dict:
        return {
            'text': text,
            'model': credentials.model,
            'provider': credentials.provider,
        }

    @staticmethod
    def record_success(
        user: User,
        credentials: Credentials,
        text: str,
        content: str,
        duration_ms: float,
    ) -> AIRequestLog:
        return AIRequestLog.objects.create(
            user=user,
            level=LogLevel.SUCCESS,
            request=AuditLogService._request_payload(credentials, text),
            response={'content': content, 'duration': duration_ms},
        )

    @staticmethod
    def record_failure(
        user: User,
        credentials: Credentials,
        text: str,
        partial_content: str,
        duration_ms: float,
        error: str,
    ) -> AIRequestLog:
        return AIRequestLog.objects.create(
            user=user,
            level=LogLevel.ERROR,
            request=AuditLogService._request_payload(credentials, text),
            response={'content': partial_content, 'duration': duration_ms},
            error=error,
        )


class TextProcessingService:
    """
    Rewrite, expand or summarize text with the user's own provider key.

    When the user's key fails before producing any output, one more attempt
    is made with the server default key (if configured). Built per request.
    """

    def __init__(
        self,
        provider_factory: Optional[Callable[..., LLMProvider]] = None,
        default_credentials: Optional[Credentials] = None,
    ):
        self.provider_factory = provider_factory or get_llm_provider
        self.default_credentials = default_credentials or load_default_credentials()

    @staticmethod
    def _user_credentials(
        user: User,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Optional[Credentials]:
        keys = ApiKey.objects.for_user(user)
        if provider:
            keys = keys.filter(provider=provider)
        if model:
            keys = keys.filter(model=model)

        api_key = keys.first()
        if api_key is None:
            return None

        try:
            plaintext = api_key.get_key()
        except DecryptionError:
            logger.warning(
                "api_key_unreadable",
                extra={"user_id": user.id, "api_key_id": api_key.id},
            )
            return None

        return Credentials(
            provider=api_key.provider,
            model=api_key.model,
            api_key=plaintext,
            source='user',
        )

    async def resolve_credentials(
        self,
        user: User,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> List[Credentials]:
        """
        Ordered credentials to try: the user's key, then the default.

        Raises:
            MissingCredentialsError: neither is available
        """
        primary = await sync_to_async(self._user_credentials)(user, provider, model)
        attempts = [c for c in (primary, self.default_credentials) if c is not None]
        if not attempts:
            logger.warning("ai_credentials_missing", extra={"user_id": user.id})
            raise MissingCredentialsError()
        return attempts

    async def process_text(
        self,
        user: User,
        text: str,
        intent: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        attempts: Optional[List[Credentials]] = None,
    ) -> AsyncIterator[str]:
        """
        Stream the processed text as coalesced chunks.

        Args:
            user: Requesting user
            text: Input text
            intent: 'rewrite', 'expand' or 'summarize'
            provider: Restrict the user's key to this provider
            model: Restrict the user's key to this model
            attempts: Pre-resolved credentials (see ``resolve_credentials``)

        Yields:
            Text chunks in order; their concatenation is the full response

        Raises:
            ValueError: unknown intent
            MissingCredentialsError: no user key and no default key
            ProviderRequestFailed: the provider could not serve the request
        """
        system_prompt = get_system_prompt(intent)
        if attempts is None:
            attempts = await self.resolve_credentials(user, provider, model)

        for index, credentials in enumerate(attempts):
            is_last = index == len(attempts) - 1
            emitted = False
            try:
                async with aclosing(self._attempt(user, credentials, text, system_prompt)) as stream:
                    async for chunk in stream:
                        emitted = True
                        yield chunk
                return
            except ProviderError as e:
                if emitted or is_last:
                    message = BOTH_ATTEMPTS_FAILED if index > 0 else e.message
                    raise ProviderRequestFailed(message) from e

                logger.info(
                    "ai_fallback_to_default_key",
                    extra={
                        "user_id": user.id,
                        "provider": credentials.provider,
                        "error": e.message,
                    },
                )

    async def _attempt(
        self,
        user: User,
        credentials: Credentials,
        text: str,
        system_prompt: str,
    ) -> AsyncIterator[str]:
        start = time.monotonic()
        parts = []

        logger.info(
            "ai_attempt_started",
            extra={
                "user_id": user.id,
                "provider": credentials.provider,
                "model": credentials.model,
                "source": credentials.source,
            },
        )

        try:
            llm = self.provider_factory(credentials.provider, credentials.api_key, credentials.model)
            stream = llm.stream_chat(
                messages=[{"role": "user", "content": text}],
                system_prompt=system_prompt,
            )
            async with aclosing(stream):
                async for chunk in stream:
                    if not chunk.content:
                        continue
                    parts.append(chunk.content)
                    yield chunk.content
        except ProviderError as e:
            await self._record_failure(user, credentials, text, parts, start, e.message, e.status_code)
            raise
        except (GeneratorExit, asyncio.CancelledError):
            # Client went away mid-stream
            await self._record_failure(user, credentials, text, parts, start, "Request cancelled")
            raise
        except Exception as e:
            await self._record_failure(user, credentials, text, parts, start, str(e) or e.__class__.__name__)
            raise

        duration = elapsed_ms(start)
        await sync_to_async(AuditLogService.record_success)(
            user, credentials, text, ''.join(parts), duration
        )
        logger.info(
            "ai_attempt_completed",
            extra={
                "user_id": user.id,
                "provider": credentials.provider,
                "source": credentials.source,
                "duration_ms": duration,
                "chars": sum(len(p) for p in parts),
            },
        )

    async def _record_failure(
        self,
        user: User,
        credentials: Credentials,
        text: str,
        parts: List[str],
        start: float,
        error: str,
        status_code: Optional[int] = None,
    ) -> None:
        duration = elapsed_ms(start)
        await sync_to_async(AuditLogService.record_failure)(
            user, credentials, text, ''.join(parts), duration, error
        )
        logger.warning(
            "ai_attempt_failed",
            extra={
                "user_id": user.id,
                "provider": credentials.provider,
                "source": credentials.source,
                "status_code": status_code,
                "error": error,
                "duration_ms": duration,
            },
        )
