"""
Tests for AI endpoints

Covers:
- /api/api-keys/: encryption at rest, masking, 409 on duplicates, key-only updates
- /api/logs/: scoping, soft delete, clear
- /api/ai/process/: JWT auth, validation, SSE event sequence, JSON mode
"""
import json
from unittest.mock import patch

from django.conf import settings
from django.contrib.auth.models import User
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import RefreshToken

from apps.ai.models import AIRequestLog, ApiKey, LogLevel
from apps.ai.serializers import ApiKeySerializer
from apps.ai.tests_services import ProviderScript
from apps.common.llm_providers import ProviderError


def _create_api_key(user, provider='openai', model='gpt-3.5-turbo', plaintext='sk-test-12345678'):
    api_key = ApiKey(user=user, provider=provider, model=model)
    api_key.set_key(plaintext)
    api_key.save()
    return api_key


class ApiKeyViewSetTest(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='owner', password='testpass123')
        self.client.force_authenticate(user=self.user)

    def test_create_stores_ciphertext_and_returns_preview(self):
        response = self.client.post('/api/api-keys/', {
            'provider': 'openai',
            'model': 'gpt-3.5-turbo',
            'api_key': 'sk-live-abcd5678',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertNotIn('api_key', response.data)
        self.assertEqual(response.data['key_preview'], 'sk-...5678')
        self.assertNotIn('sk-live-abcd5678', json.dumps(response.data, default=str))

        stored = ApiKey.objects.get(id=response.data['id'])
        self.assertNotEqual(stored.encrypted_key, 'sk-live-abcd5678')
        self.assertEqual(stored.get_key(), 'sk-live-abcd5678')
        self.assertEqual(stored.user, self.user)

    def test_model_defaults_to_provider_default(self):
        response = self.client.post('/api/api-keys/', {
            'provider': 'aliyun',
            'api_key': 'sk-aliyun-0001',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['model'], settings.AI_PROVIDERS['aliyun']['default_model'])

    def test_duplicate_provider_model_conflicts(self):
        _create_api_key(self.user)

        response = self.client.post('/api/api-keys/', {
            'provider': 'openai',
            'model': 'gpt-3.5-turbo',
            'api_key': 'sk-second',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['detail'].code, 'api_key_conflict')
        self.assertEqual(ApiKey.objects.filter(user=self.user).count(), 1)

    def test_duplicate_created_concurrently_conflicts(self):
        validate = ApiKeySerializer.validate

        def validate_then_insert(serializer, attrs):
            attrs = validate(serializer, attrs)
            # A second request stores the same key after this one was validated
            _create_api_key(self.user)
            return attrs

        with patch.object(ApiKeySerializer, 'validate', validate_then_insert):
            response = self.client.post('/api/api-keys/', {
                'provider': 'openai',
                'model': 'gpt-3.5-turbo',
                'api_key': 'sk-racer',
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['detail'].code, 'api_key_conflict')
        self.assertEqual(ApiKey.objects.filter(user=self.user).count(), 1)

    def test_same_provider_model_allowed_for_different_users(self):
        other = User.objects.create_user(username='other', password='testpass123')
        _create_api_key(other)

        response = self.client.post('/api/api-keys/', {
            'provider': 'openai',
            'model': 'gpt-3.5-turbo',
            'api_key': 'sk-mine',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_unknown_provider(self):
        response = self.client.post('/api/api-keys/', {
            'provider': 'acme',
            'model': 'x',
            'api_key': 'sk',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_only_own_keys_ordered(self):
        _create_api_key(self.user, provider='openai', model='gpt-4o-mini')
        _create_api_key(self.user, provider='aliyun', model='qwen-turbo')
        other = User.objects.create_user(username='other', password='testpass123')
        _create_api_key(other, provider='aliyun', model='qwen-max')

        response = self.client.get('/api/api-keys/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        pairs = [(k['provider'], k['model']) for k in response.data['results']]
        self.assertEqual(pairs, [('aliyun', 'qwen-turbo'), ('openai', 'gpt-4o-mini')])

    def test_update_replaces_only_the_key(self):
        api_key = _create_api_key(self.user)

        response = self.client.put(f'/api/api-keys/{api_key.id}/', {
            'api_key': 'sk-rotated-9999',
            'provider': 'aliyun',
            'model': 'qwen-max',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['key_preview'], 'sk-...9999')
        api_key.refresh_from_db()
        self.assertEqual(api_key.provider, 'openai')
        self.assertEqual(api_key.model, 'gpt-3.5-turbo')
        self.assertEqual(api_key.get_key(), 'sk-rotated-9999')

    def test_delete(self):
        api_key = _create_api_key(self.user)

        response = self.client.delete(f'/api/api-keys/{api_key.id}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ApiKey.objects.filter(id=api_key.id).exists())

    def test_other_users_key_is_not_found(self):
        other = User.objects.create_user(username='other', password='testpass123')
        foreign = _create_api_key(other)

        self.assertEqual(
            self.client.get(f'/api/api-keys/{foreign.id}/').status_code,
            status.HTTP_404_NOT_FOUND,
        )
        self.assertEqual(
            self.client.put(f'/api/api-keys/{foreign.id}/', {'api_key': 'sk-x'}, format='json').status_code,
            status.HTTP_404_NOT_FOUND,
        )


class AIRequestLogViewSetTest(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='owner', password='testpass123')
        self.other = User.objects.create_user(username='other', password='testpass123')
        self.client.force_authenticate(user=self.user)

    def _log(self, user, level=LogLevel.SUCCESS, deleted=False):
        return AIRequestLog.objects.create(
            user=user,
            level=level,
            request={'text': 'hi', 'model': 'qwen-turbo', 'provider': 'aliyun'},
            response={'content': 'hello', 'duration': 12.5},
            deleted_at=timezone.now() if deleted else None,
        )

    def test_list_hides_deleted_and_foreign_logs(self):
        visible = self._log(self.user)
        self._log(self.user, deleted=True)
        self._log(self.other)

        response = self.client.get('/api/logs/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([entry['id'] for entry in response.data['results']], [str(visible.id)])
        self.assertEqual(response.data['results'][0]['response']['duration'], 12.5)

    def test_retrieve(self):
        log = self._log(self.user, level=LogLevel.ERROR)

        response = self.client.get(f'/api/logs/{log.id}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['level'], 'error')

    def test_destroy_is_soft(self):
        log = self._log(self.user)

        response = self.client.delete(f'/api/logs/{log.id}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        log.refresh_from_db()
        self.assertIsNotNone(log.deleted_at)
        self.assertEqual(self.client.get(f'/api/logs/{log.id}/').status_code, status.HTTP_404_NOT_FOUND)

    def test_clear_soft_deletes_own_logs_only(self):
        self._log(self.user)
        self._log(self.user, level=LogLevel.ERROR)
        foreign = self._log(self.other)

        response = self.client.delete('/api/logs/clear/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'deleted': 2})
        self.assertEqual(AIRequestLog.objects.filter(user=self.user).count(), 2)
        self.assertEqual(AIRequestLog.objects.for_user(self.user).active().count(), 0)
        foreign.refresh_from_db()
        self.assertIsNone(foreign.deleted_at)

    def test_logs_are_not_client_writable(self):
        response = self.client.post('/api/logs/', {'level': 'info'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)


def _parse_sse(body):
    events = []
    for block in body.strip().split('\n\n'):
        event_line, data_line = block.split('\n')
        events.append((
            event_line[len('event: '):],
            json.loads(data_line[len('data: '):]),
        ))
    return events


class ProcessTextViewTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username='writer', password='testpass123')
        cls.keyless = User.objects.create_user(username='keyless', password='testpass123')
        _create_api_key(cls.user, plaintext='sk-user-key')
        cls.token = str(RefreshToken.for_user(cls.user).access_token)
        cls.keyless_token = str(RefreshToken.for_user(cls.keyless).access_token)

    async def _post(self, payload, token=None, **extra_headers):
        headers = dict(extra_headers)
        if token is not None:
            headers['Authorization'] = f'Bearer {token}'
        return await self.async_client.post(
            '/api/ai/process/',
            data=payload,
            content_type='application/json',
            headers=headers,
        )

    async def _read_stream(self, response):
        return b''.join([chunk async for chunk in response.streaming_content]).decode('utf-8')

    async def test_requires_token(self):
        response = await self._post({'text': 'hi', 'intent': 'rewrite'})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {'error': 'Authentication required'})

    async def test_rejects_invalid_token(self):
        response = await self._post({'text': 'hi', 'intent': 'rewrite'}, token='not-a-jwt')

        self.assertEqual(response.status_code, 401)

    async def test_get_not_allowed(self):
        response = await self.async_client.get(
            '/api/ai/process/',
            headers={'Authorization': f'Bearer {self.token}'},
        )

        self.assertEqual(response.status_code, 405)

    async def test_unknown_intent(self):
        response = await self._post({'text': 'hi', 'intent': 'translate'}, token=self.token)

        self.assertEqual(response.status_code, 400)
        self.assertIn('intent', response.json()['error'])

    async def test_empty_text(self):
        response = await self._post({'text': '', 'intent': 'rewrite'}, token=self.token)

        self.assertEqual(response.status_code, 400)
        self.assertIn('text', response.json()['error'])

    async def test_invalid_json_body(self):
        response = await self._post('{not json', token=self.token)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Invalid JSON body'})

    async def test_missing_credentials(self):
        response = await self._post({'text': 'hi', 'intent': 'rewrite'}, token=self.keyless_token)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'No API key configured'})

    async def test_streams_chunks_then_complete(self):
        script = ProviderScript((["Hel", "lo"], None))

        with patch('apps.ai.services.get_llm_provider', script):
            response = await self._post(
                {'text': 'hi', 'intent': 'rewrite'},
                token=self.token,
                Origin='http://localhost:3000',
            )
            body = await self._read_stream(response)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/event-stream')
        self.assertEqual(response['Cache-Control'], 'no-cache')
        self.assertEqual(response['Access-Control-Allow-Origin'], 'http://localhost:3000')
        self.assertEqual(response['Access-Control-Allow-Credentials'], 'true')
        self.assertEqual(_parse_sse(body), [
            ('chunk', {'content': 'Hel'}),
            ('chunk', {'content': 'lo'}),
            ('complete', {'content': 'Hello'}),
        ])
        self.assertEqual(script.calls, [('openai', 'sk-user-key', 'gpt-3.5-turbo')])
        log = await AIRequestLog.objects.aget(user=self.user)
        self.assertEqual(log.level, LogLevel.SUCCESS)

    async def test_stream_failure_ends_with_single_error_event(self):
        script = ProviderScript(([], ProviderError("Incorrect API key provided", status_code=401)))

        with patch('apps.ai.services.get_llm_provider', script):
            response = await self._post({'text': 'hi', 'intent': 'summarize'}, token=self.token)
            body = await self._read_stream(response)

        self.assertEqual(_parse_sse(body), [
            ('error', {'error': 'Incorrect API key provided'}),
        ])
        log = await AIRequestLog.objects.aget(user=self.user)
        self.assertEqual(log.level, LogLevel.ERROR)

    async def test_json_mode(self):
        script = ProviderScript((["Hel", "lo"], None))

        with patch('apps.ai.services.get_llm_provider', script):
            response = await self._post({'text': 'hi', 'intent': 'expand', 'stream': False}, token=self.token)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'content': 'Hello'})

    async def test_json_mode_provider_failure(self):
        script = ProviderScript(([], ProviderError("Provider request failed: 503: upstream down", status_code=503)))

        with patch('apps.ai.services.get_llm_provider', script):
            response = await self._post({'text': 'hi', 'intent': 'expand', 'stream': False}, token=self.token)

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json(), {'error': 'Provider request failed: 503: upstream down'})
