import time
import uuid
from contextlib import aclosing
from typing import Callable, Optional

from asgiref.sync import iscoroutinefunction, markcoroutinefunction
from django.http import HttpRequest, HttpResponse, StreamingHttpResponse

from apps.common.correlation import set_correlation_id
from apps.common.logging_utils import build_log_extra, elapsed_ms, get_logger


logger = get_logger(__name__)


def _get_user_id(request: HttpRequest) -> Optional[int]:
    user = getattr(request, "user", None)
    if user and getattr(user, "is_authenticated", False):
        return user.id
    return None


async def _aget_user_id(request: HttpRequest) -> Optional[int]:
    auser = getattr(request, "auser", None)
    if auser is None:
        return None
    user = await auser()
    if getattr(user, "is_authenticated", False):
        return user.id
    return None


class RequestLoggingMiddleware:
    """
    Tags every request with an ``X-Correlation-ID`` and logs its outcome.

    Works in both sync and async stacks. Streaming responses are logged when
    the view returns, not when the stream closes, so ``duration_ms`` for them
    is time-to-first-byte. Their correlation id stays bound while the body
    is consumed and is cleared once it ends.
    """

    sync_capable = True
    async_capable = True

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response
        if iscoroutinefunction(self.get_response):
            markcoroutinefunction(self)

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if iscoroutinefunction(self):
            return self.__acall__(request)

        start_time, correlation_id = self._begin(request)
        try:
            response = self.get_response(request)
        except Exception:
            self._log_failure(request, start_time, correlation_id, _get_user_id(request))
            raise
        return self._finish(request, response, start_time, correlation_id, _get_user_id(request))

    async def __acall__(self, request: HttpRequest) -> HttpResponse:
        start_time, correlation_id = self._begin(request)
        try:
            response = await self.get_response(request)
        except Exception:
            self._log_failure(request, start_time, correlation_id, await _aget_user_id(request))
            raise
        return self._finish(request, response, start_time, correlation_id, await _aget_user_id(request))

    def _begin(self, request: HttpRequest):
        start_time = time.monotonic()
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.correlation_id = correlation_id
        set_correlation_id(correlation_id)
        return start_time, correlation_id

    def _log_failure(
        self,
        request: HttpRequest,
        start_time: float,
        correlation_id: str,
        user_id: Optional[int],
    ) -> None:
        extra = build_log_extra(
            correlation_id=correlation_id,
            method=request.method,
            path=request.path,
            status_code=500,
            duration_ms=elapsed_ms(start_time),
            user_id=user_id,
        )
        logger.exception("request_failed", extra=extra)
        set_correlation_id(None)

    def _finish(
        self,
        request: HttpRequest,
        response: HttpResponse,
        start_time: float,
        correlation_id: str,
        user_id: Optional[int],
    ) -> HttpResponse:
        extra = build_log_extra(
            correlation_id=correlation_id,
            method=request.method,
            path=request.path,
            status_code=getattr(response, "status_code", None),
            duration_ms=elapsed_ms(start_time),
            streaming=getattr(response, "streaming", False),
            user_id=user_id,
        )
        logger.info("request_completed", extra=extra)
        response["X-Correlation-ID"] = correlation_id
        if getattr(response, "streaming", False):
            self._bind_stream(response, correlation_id)
        else:
            set_correlation_id(None)
        return response

    def _bind_stream(self, response: StreamingHttpResponse, correlation_id: str) -> None:
        content = response.streaming_content

        if response.is_async:
            async def bound():
                set_correlation_id(correlation_id)
                try:
                    async with aclosing(content):
                        async for part in content:
                            yield part
                finally:
                    set_correlation_id(None)
        else:
            def bound():
                set_correlation_id(correlation_id)
                try:
                    yield from content
                finally:
                    set_correlation_id(None)

        response.streaming_content = bound()
