"""
Provider for OpenAI-compatible chat completion endpoints.

OpenAI itself and Aliyun DashScope's compatible mode share the same request
body and the same ``data: {...}`` streaming framing, so one class serves
both; only the base URL differs.
"""
import logging
from typing import AsyncIterator, Optional

import httpx

from .base import LLMProvider, ProviderError, StreamChunk
from .streaming import DEFAULT_CHUNK_SIZE, DEFAULT_FLUSH_INTERVAL, StreamDecoder

logger = logging.getLogger(__name__)

ERROR_PREVIEW_CHARS = 100


def _error_message(response: httpx.Response) -> str:
    default = f"Provider request failed: {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return f"{default}: {response.text[:ERROR_PREVIEW_CHARS]}"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return default


class OpenAICompatibleProvider(LLMProvider):
    """Streams completions over raw HTTP and decodes them with StreamDecoder"""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        name: str = "openai",
        timeout: float = 60.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, model)
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.flush_interval = flush_interval
        self.transport = transport

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def stream_chat(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> AsyncIterator[StreamChunk]:
        """Stream chat completion from the provider"""

        request_messages = []
        if system_prompt:
            request_messages.append({"role": "system", "content": system_prompt})
        request_messages.extend(messages)

        body = {
            "model": self.model,
            "messages": request_messages,
            "stream": True,
            **kwargs,
        }
        decoder = StreamDecoder(
            chunk_size=self.chunk_size,
            flush_interval=self.flush_interval,
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                async with client.stream(
                    "POST", self.completions_url, json=body, headers=self._headers()
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        message = _error_message(response)
                        logger.warning(
                            "provider_request_rejected",
                            extra={
                                "provider": self.name,
                                "model": self.model,
                                "status_code": response.status_code,
                            },
                        )
                        raise ProviderError(message, status_code=response.status_code)

                    async for text in decoder.decode(response.aiter_bytes()):
                        yield StreamChunk(content=text)
        except httpx.HTTPError as e:
            logger.warning(
                "provider_transport_error",
                extra={"provider": self.name, "model": self.model, "error": str(e)},
            )
            raise ProviderError(f"Provider request failed: {e}") from e

        if decoder.skipped_records:
            logger.info(
                "provider_stream_records_skipped",
                extra={"provider": self.name, "skipped": decoder.skipped_records},
            )
