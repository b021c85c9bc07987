"""
Tests for request logging middleware and correlation ids
"""
from django.http import StreamingHttpResponse
from django.test import TestCase, override_settings
from django.urls import path

from apps.common.correlation import get_correlation_id

seen_in_body = []


async def async_stream_view(request):
    async def body():
        seen_in_body.append(get_correlation_id())
        yield b'data: one\n\n'

    return StreamingHttpResponse(body(), content_type='text/event-stream')


def sync_stream_view(request):
    def body():
        seen_in_body.append(get_correlation_id())
        yield b'data: one\n\n'

    return StreamingHttpResponse(body(), content_type='text/event-stream')


urlpatterns = [
    path('stream/async/', async_stream_view),
    path('stream/sync/', sync_stream_view),
]


class RequestLoggingMiddlewareTest(TestCase):

    def test_generates_correlation_id(self):
        response = self.client.get('/api/health/')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response['X-Correlation-ID'])

    def test_propagates_incoming_correlation_id(self):
        with self.assertLogs('apps.common.middleware.request_logging', level='INFO') as logs:
            response = self.client.get('/api/health/', headers={'X-Correlation-ID': 'abc-123'})

        self.assertEqual(response['X-Correlation-ID'], 'abc-123')
        record = logs.records[-1]
        self.assertEqual(record.getMessage(), 'request_completed')
        self.assertEqual(record.correlation_id, 'abc-123')
        self.assertEqual(record.status_code, 200)
        self.assertIsNone(get_correlation_id())

    async def test_async_stack_sets_correlation_id(self):
        response = await self.async_client.get('/api/health/', headers={'X-Correlation-ID': 'async-1'})

        self.assertEqual(response['X-Correlation-ID'], 'async-1')


@override_settings(ROOT_URLCONF='apps.common.tests_middleware')
class StreamingCorrelationIdTest(TestCase):

    def setUp(self):
        seen_in_body.clear()

    async def test_async_stream_body_sees_correlation_id(self):
        response = await self.async_client.get('/stream/async/', headers={'X-Correlation-ID': 'abc'})
        body = b''.join([part async for part in response.streaming_content])

        self.assertEqual(body, b'data: one\n\n')
        self.assertEqual(response['X-Correlation-ID'], 'abc')
        self.assertEqual(seen_in_body, ['abc'])
        self.assertIsNone(get_correlation_id())

    def test_sync_stream_body_sees_correlation_id(self):
        response = self.client.get('/stream/sync/', headers={'X-Correlation-ID': 'sync-abc'})
        body = b''.join(response.streaming_content)

        self.assertEqual(body, b'data: one\n\n')
        self.assertEqual(seen_in_body, ['sync-abc'])
        self.assertIsNone(get_correlation_id())
