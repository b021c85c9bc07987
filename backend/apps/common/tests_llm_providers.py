"""
Tests for the OpenAI-compatible provider and the provider factory.

HTTP is served by httpx.MockTransport; nothing leaves the process.
"""
import json

import httpx
from django.test import SimpleTestCase, override_settings

from apps.common.llm_providers import (
    OpenAICompatibleProvider,
    ProviderError,
    get_llm_provider,
    stream_and_collect,
)


DONE = b"data: [DONE]\n\n"


def _data_record(content):
    payload = {"choices": [{"index": 0, "delta": {"content": content}}]}
    return f"data: {json.dumps(payload)}\n\n".encode("utf-8")


def _sse_body(*contents):
    return b"".join(_data_record(content) for content in contents) + DONE


def _provider(handler, **kwargs):
    options = {
        'api_key': 'sk-test-1234',
        'model': 'gpt-3.5-turbo',
        'base_url': 'https://llm.test/v1/',
        'chunk_size': 1,
        'flush_interval': 0.0,
        'transport': httpx.MockTransport(handler),
    }
    options.update(kwargs)
    return OpenAICompatibleProvider(**options)


async def _collect(provider, text="Hello", system_prompt="Be brief."):
    return [
        chunk.content
        async for chunk in provider.stream_chat(
            messages=[{"role": "user", "content": text}],
            system_prompt=system_prompt,
        )
    ]


class OpenAICompatibleProviderTest(SimpleTestCase):

    async def test_streams_decoded_chunks(self):
        captured = {}

        def handler(request):
            captured['url'] = str(request.url)
            captured['headers'] = request.headers
            captured['body'] = json.loads(request.content)
            return httpx.Response(200, content=_sse_body("Hel", "lo"))

        chunks = await _collect(_provider(handler))

        self.assertEqual("".join(chunks), "Hello")
        self.assertEqual(captured['url'], 'https://llm.test/v1/chat/completions')
        self.assertEqual(captured['headers']['authorization'], 'Bearer sk-test-1234')
        self.assertEqual(captured['body']['model'], 'gpt-3.5-turbo')
        self.assertTrue(captured['body']['stream'])
        self.assertEqual(captured['body']['messages'], [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hello"},
        ])

    async def test_records_split_across_network_reads(self):
        body = _sse_body("split ", "across ", "reads")

        async def trickle():
            for i in range(0, len(body), 7):
                yield body[i:i + 7]

        def handler(request):
            return httpx.Response(200, content=trickle())

        chunks = await _collect(_provider(handler))

        self.assertEqual("".join(chunks), "split across reads")

    async def test_coalesces_with_configured_chunk_size(self):
        async def one_record_per_read():
            for _ in range(30):
                yield _data_record("x")
            yield DONE

        def handler(request):
            return httpx.Response(200, content=one_record_per_read())

        chunks = await _collect(_provider(handler, chunk_size=10, flush_interval=60.0))

        self.assertEqual(chunks, ["x" * 10] * 3)

    async def test_json_error_message_is_surfaced(self):
        def handler(request):
            return httpx.Response(
                401,
                json={"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}},
            )

        with self.assertRaises(ProviderError) as ctx:
            await _collect(_provider(handler))

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.message, "Incorrect API key provided")

    async def test_non_json_error_is_truncated(self):
        def handler(request):
            return httpx.Response(500, text="<html>" + "x" * 500 + "</html>")

        with self.assertRaises(ProviderError) as ctx:
            await _collect(_provider(handler))

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertTrue(ctx.exception.message.startswith("Provider request failed: 500: <html>"))
        self.assertEqual(
            len(ctx.exception.message),
            len("Provider request failed: 500: ") + 100,
        )

    async def test_transport_error_is_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(ProviderError) as ctx:
            await _collect(_provider(handler))

        self.assertIsNone(ctx.exception.status_code)
        self.assertIn("connection refused", ctx.exception.message)

    async def test_generate_and_stream_and_collect(self):
        def handler(request):
            return httpx.Response(200, content=_sse_body("full ", "text"))

        provider = _provider(handler)

        self.assertEqual(
            await provider.generate([{"role": "user", "content": "hi"}]),
            "full text",
        )
        self.assertEqual(
            await stream_and_collect(provider, [{"role": "user", "content": "hi"}], "sys"),
            "full text",
        )


@override_settings(
    AI_PROVIDERS={
        'openai': {'base_url': 'https://openai.test/v1', 'default_model': 'gpt-3.5-turbo'},
        'aliyun': {'base_url': 'https://dashscope.test/compatible-mode/v1', 'default_model': 'qwen-turbo'},
    },
    AI_REQUEST_TIMEOUT=12.5,
    AI_STREAM_CHUNK_SIZE=100,
    AI_STREAM_FLUSH_INTERVAL=0.05,
)
class ProviderFactoryTest(SimpleTestCase):

    def test_builds_provider_from_settings(self):
        provider = get_llm_provider('aliyun', 'sk-aliyun')

        self.assertIsInstance(provider, OpenAICompatibleProvider)
        self.assertEqual(provider.name, 'aliyun')
        self.assertEqual(provider.model, 'qwen-turbo')
        self.assertEqual(provider.completions_url, 'https://dashscope.test/compatible-mode/v1/chat/completions')
        self.assertEqual(provider.timeout, 12.5)
        self.assertEqual(provider.chunk_size, 100)
        self.assertEqual(provider.flush_interval, 0.05)

    def test_explicit_model_wins(self):
        provider = get_llm_provider('openai', 'sk-openai', model='gpt-4o-mini')

        self.assertEqual(provider.model, 'gpt-4o-mini')

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            get_llm_provider('nonexistent', 'sk')
