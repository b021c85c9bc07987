"""
Tests for TextProcessingService

Covers:
- credential resolution (user key, default key, missing, unreadable)
- fallback to the default key after an outright failure, exactly once
- no fallback once output has been produced
- one audit log row per attempt, including cancelled and crashed ones
"""
from django.contrib.auth.models import User
from django.test import TestCase

from apps.ai.models import AIRequestLog, ApiKey, LogLevel
from apps.ai.prompts import get_system_prompt
from apps.ai.services import (
    BOTH_ATTEMPTS_FAILED,
    Credentials,
    TextProcessingService,
)
from apps.common.exceptions import MissingCredentialsError, ProviderRequestFailed
from apps.common.llm_providers import LLMProvider, ProviderError, StreamChunk

DEFAULT = Credentials(provider='aliyun', model='qwen-turbo', api_key='sk-default', source='default')


class ScriptedProvider(LLMProvider):
    """Yields the given chunks, then optionally raises."""

    name = "scripted"

    def __init__(self, api_key, model, chunks=(), error=None):
        super().__init__(api_key, model)
        self.chunks = chunks
        self.error = error
        self.calls = []

    async def stream_chat(self, messages, system_prompt=None, **kwargs):
        self.calls.append({'messages': messages, 'system_prompt': system_prompt})
        for content in self.chunks:
            yield StreamChunk(content=content)
        if self.error is not None:
            raise self.error


class ProviderScript:
    """Provider factory that hands out one scripted provider per attempt."""

    def __init__(self, *attempts):
        self.attempts = list(attempts)
        self.calls = []
        self.providers = []

    def __call__(self, provider_name, api_key, model=None):
        self.calls.append((provider_name, api_key, model))
        chunks, error = self.attempts.pop(0)
        provider = ScriptedProvider(api_key, model, chunks=chunks, error=error)
        self.providers.append(provider)
        return provider


async def _collect(agen):
    return [chunk async for chunk in agen]


async def _logs(user):
    return [log async for log in AIRequestLog.objects.filter(user=user).order_by('created_at')]


class TextProcessingServiceTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username='writer', password='testpass123')
        cls.keyless = User.objects.create_user(username='keyless', password='testpass123')

        api_key = ApiKey(user=cls.user, provider='openai', model='gpt-3.5-turbo')
        api_key.set_key('sk-user-openai')
        api_key.save()

        aliyun_key = ApiKey(user=cls.user, provider='aliyun', model='qwen-plus')
        aliyun_key.set_key('sk-user-aliyun')
        aliyun_key.save()

    async def test_user_key_success(self):
        script = ProviderScript((["Polished ", "text."], None))
        service = TextProcessingService(provider_factory=script)

        chunks = await _collect(service.process_text(self.user, 'rough text', 'rewrite', provider='openai'))

        self.assertEqual(''.join(chunks), 'Polished text.')
        self.assertEqual(script.calls, [('openai', 'sk-user-openai', 'gpt-3.5-turbo')])
        call = script.providers[0].calls[0]
        self.assertEqual(call['messages'], [{'role': 'user', 'content': 'rough text'}])
        self.assertEqual(call['system_prompt'], get_system_prompt('rewrite'))

        logs = await _logs(self.user)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].level, LogLevel.SUCCESS)
        self.assertEqual(logs[0].request, {'text': 'rough text', 'model': 'gpt-3.5-turbo', 'provider': 'openai'})
        self.assertEqual(logs[0].response['content'], 'Polished text.')
        self.assertGreaterEqual(logs[0].response['duration'], 0)

    async def test_first_key_in_provider_model_order_when_unspecified(self):
        script = ProviderScript((["ok"], None))
        service = TextProcessingService(provider_factory=script)

        await _collect(service.process_text(self.user, 'text', 'summarize'))

        # 'aliyun' sorts before 'openai'
        self.assertEqual(script.calls, [('aliyun', 'sk-user-aliyun', 'qwen-plus')])

    async def test_model_selects_matching_key(self):
        script = ProviderScript((["ok"], None))
        service = TextProcessingService(provider_factory=script)

        await _collect(service.process_text(self.user, 'text', 'expand', model='gpt-3.5-turbo'))

        self.assertEqual(script.calls[0][1], 'sk-user-openai')

    async def test_missing_credentials_fail_before_any_call(self):
        script = ProviderScript()
        service = TextProcessingService(provider_factory=script)

        with self.assertRaises(MissingCredentialsError) as ctx:
            await _collect(service.process_text(self.keyless, 'text', 'rewrite'))

        self.assertEqual(str(ctx.exception.detail), 'No API key configured')
        self.assertEqual(script.calls, [])
        self.assertEqual(await AIRequestLog.objects.filter(user=self.keyless).acount(), 0)

    async def test_fallback_to_default_after_outright_failure(self):
        script = ProviderScript(
            ([], ProviderError("Incorrect API key provided", status_code=401)),
            (["from ", "default"], None),
        )
        service = TextProcessingService(provider_factory=script, default_credentials=DEFAULT)

        chunks = await _collect(service.process_text(self.user, 'text', 'rewrite', provider='openai'))

        self.assertEqual(''.join(chunks), 'from default')
        self.assertEqual([call[1] for call in script.calls], ['sk-user-openai', 'sk-default'])

        logs = await _logs(self.user)
        self.assertEqual([log.level for log in logs], [LogLevel.ERROR, LogLevel.SUCCESS])
        self.assertEqual(logs[0].error, 'Incorrect API key provided')
        self.assertEqual(logs[0].request['provider'], 'openai')
        self.assertEqual(logs[1].request['provider'], 'aliyun')
        self.assertEqual(logs[1].request['model'], 'qwen-turbo')

    async def test_both_attempts_fail(self):
        script = ProviderScript(
            ([], ProviderError("user key rejected", status_code=401)),
            ([], ProviderError("default key rejected", status_code=429)),
        )
        service = TextProcessingService(provider_factory=script, default_credentials=DEFAULT)

        with self.assertRaises(ProviderRequestFailed) as ctx:
            await _collect(service.process_text(self.user, 'text', 'rewrite', provider='openai'))

        self.assertEqual(str(ctx.exception.detail), BOTH_ATTEMPTS_FAILED)
        self.assertEqual(len(script.calls), 2)

        logs = await _logs(self.user)
        self.assertEqual([log.level for log in logs], [LogLevel.ERROR, LogLevel.ERROR])
        self.assertEqual([log.error for log in logs], ['user key rejected', 'default key rejected'])

    async def test_no_fallback_after_partial_output(self):
        script = ProviderScript(
            (["half a "], ProviderError("Provider request failed: read timeout")),
            (["never"], None),
        )
        service = TextProcessingService(provider_factory=script, default_credentials=DEFAULT)

        received = []
        with self.assertRaises(ProviderRequestFailed) as ctx:
            async for chunk in service.process_text(self.user, 'text', 'expand', provider='openai'):
                received.append(chunk)

        self.assertEqual(received, ['half a '])
        self.assertEqual(str(ctx.exception.detail), 'Provider request failed: read timeout')
        self.assertEqual(len(script.calls), 1)

        logs = await _logs(self.user)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].level, LogLevel.ERROR)
        self.assertEqual(logs[0].response['content'], 'half a ')

    async def test_single_failure_without_default(self):
        script = ProviderScript(([], ProviderError("Incorrect API key provided", status_code=401)))
        service = TextProcessingService(provider_factory=script)

        with self.assertRaises(ProviderRequestFailed) as ctx:
            await _collect(service.process_text(self.user, 'text', 'rewrite', provider='openai'))

        self.assertEqual(str(ctx.exception.detail), 'Incorrect API key provided')
        self.assertEqual(len(script.calls), 1)

    async def test_default_only_is_a_single_attempt(self):
        script = ProviderScript((["default answer"], None))
        service = TextProcessingService(provider_factory=script, default_credentials=DEFAULT)

        chunks = await _collect(service.process_text(self.keyless, 'text', 'summarize'))

        self.assertEqual(chunks, ['default answer'])
        self.assertEqual(script.calls, [('aliyun', 'sk-default', 'qwen-turbo')])
        self.assertEqual(await AIRequestLog.objects.filter(user=self.keyless).acount(), 1)

    async def test_closing_stream_mid_response_is_audited(self):
        script = ProviderScript((["partial ", "never read"], None))
        service = TextProcessingService(provider_factory=script, default_credentials=DEFAULT)

        chunks = service.process_text(self.user, 'text', 'rewrite', provider='openai')
        first = await chunks.__anext__()
        await chunks.aclose()

        self.assertEqual(first, 'partial ')
        self.assertEqual(len(script.calls), 1)
        logs = await _logs(self.user)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].level, LogLevel.ERROR)
        self.assertEqual(logs[0].error, 'Request cancelled')
        self.assertEqual(logs[0].response['content'], 'partial ')

    async def test_unexpected_error_is_audited_and_not_retried(self):
        script = ProviderScript((["half "], RuntimeError("connection reset")))
        service = TextProcessingService(provider_factory=script, default_credentials=DEFAULT)

        with self.assertRaises(RuntimeError):
            await _collect(service.process_text(self.user, 'text', 'rewrite', provider='openai'))

        self.assertEqual(len(script.calls), 1)
        logs = await _logs(self.user)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].level, LogLevel.ERROR)
        self.assertEqual(logs[0].error, 'connection reset')
        self.assertEqual(logs[0].response['content'], 'half ')

    async def test_provider_construction_error_is_audited(self):
        def unknown_provider(provider_name, api_key, model=None):
            raise ValueError(f"Unknown LLM provider: {provider_name}")

        service = TextProcessingService(provider_factory=unknown_provider)

        with self.assertRaises(ValueError):
            await _collect(service.process_text(self.user, 'text', 'rewrite', provider='openai'))

        logs = await _logs(self.user)
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].error, 'Unknown LLM provider: openai')
        self.assertEqual(logs[0].response['content'], '')

    async def test_unreadable_key_is_treated_as_missing(self):
        broken = await User.objects.acreate(username='broken')
        await ApiKey.objects.acreate(
            user=broken, provider='openai', model='gpt-3.5-turbo', encrypted_key='garbage',
        )
        service = TextProcessingService(provider_factory=ProviderScript())

        with self.assertRaises(MissingCredentialsError):
            await service.resolve_credentials(broken)


class PromptsTest(TestCase):

    def test_every_intent_has_a_prompt(self):
        for intent in ('rewrite', 'expand', 'summarize'):
            self.assertTrue(get_system_prompt(intent))

    def test_unknown_intent(self):
        with self.assertRaises(ValueError):
            get_system_prompt('translate')
