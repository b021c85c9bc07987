"""
Views for API keys, request logs and text processing
"""
import json
import logging
from contextlib import aclosing

from django.db import IntegrityError, transaction
from django.http import JsonResponse, StreamingHttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.ai.models import AIRequestLog, ApiKey
from apps.ai.serializers import (
    AIRequestLogSerializer,
    ApiKeySerializer,
    ApiKeyUpdateSerializer,
    ProcessTextSerializer,
)
from apps.ai.services import TextProcessingService
from apps.common.auth import authenticate_jwt
from apps.common.exceptions import (
    ApiKeyConflict,
    MissingCredentialsError,
    ProviderRequestFailed,
)

logger = logging.getLogger(__name__)


class ApiKeyViewSet(viewsets.ModelViewSet):
    """
    The current user's provider API keys.

    Responses carry ``key_preview`` only. Updates replace the key itself.
    """
    serializer_class = ApiKeySerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return ApiKey.objects.for_user(self.request.user)

    def perform_create(self, serializer):
        # unique_api_key_per_provider_model rejects duplicates, including concurrent ones
        try:
            with transaction.atomic():
                instance = serializer.save(user=self.request.user)
        except IntegrityError:
            raise ApiKeyConflict()

        logger.info(
            "api_key_created",
            extra={
                "user_id": self.request.user.id,
                "provider": instance.provider,
                "model": instance.model,
            },
        )

    def update(self, request, *args, **kwargs):
        instance = self.get_object()
        serializer = ApiKeyUpdateSerializer(
            instance,
            data=request.data,
            partial=kwargs.get('partial', False),
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()

        logger.info(
            "api_key_updated",
            extra={"user_id": request.user.id, "api_key_id": instance.id},
        )
        return Response(self.get_serializer(instance).data)


class AIRequestLogViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """
    Audit log of AI requests, newest first.

    Deleting only hides rows (soft delete).
    """
    serializer_class = AIRequestLogSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return AIRequestLog.objects.for_user(self.request.user).active()

    def perform_destroy(self, instance):
        instance.soft_delete()

    @action(detail=False, methods=['delete'])
    def clear(self, request):
        """
        Soft delete every visible log of the current user

        DELETE /api/logs/clear/
        """
        count = self.get_queryset().soft_delete()
        logger.info("ai_logs_cleared", extra={"user_id": request.user.id, "count": count})
        return Response({'deleted': count}, status=status.HTTP_200_OK)


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@csrf_exempt
@require_POST
async def process_text(request):
    """
    Rewrite, expand or summarize text with the configured provider.

    POST /api/ai/process/
    Body: {text, intent, provider?, model?, stream?}

    With ``stream`` true (default) the response is Server-Sent Events:
      chunk:    { content } for each coalesced piece of text
      complete: { content } with the full text (terminal)
      error:    { error } (terminal)

    With ``stream`` false the full text is returned as JSON { content }.
    Missing credentials are rejected with 400 before any provider call.
    """
    user = await authenticate_jwt(request)
    if user is None:
        return JsonResponse({'error': 'Authentication required'}, status=401)

    try:
        payload = json.loads(request.body or b'{}')
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)

    serializer = ProcessTextSerializer(data=payload)
    if not serializer.is_valid():
        return JsonResponse({'error': serializer.errors}, status=400)
    data = serializer.validated_data

    service = TextProcessingService()
    try:
        attempts = await service.resolve_credentials(user, data.get('provider'), data.get('model'))
    except MissingCredentialsError as e:
        return JsonResponse({'error': str(e.detail)}, status=e.status_code)

    chunks = service.process_text(
        user,
        data['text'],
        data['intent'],
        attempts=attempts,
    )

    if not data['stream']:
        parts = []
        try:
            async for chunk in chunks:
                parts.append(chunk)
        except ProviderRequestFailed as e:
            return JsonResponse({'error': str(e.detail)}, status=e.status_code)
        return JsonResponse({'content': ''.join(parts)})

    async def event_stream():
        parts = []
        try:
            async with aclosing(chunks):
                async for chunk in chunks:
                    parts.append(chunk)
                    yield _sse('chunk', {'content': chunk})
        except ProviderRequestFailed as e:
            yield _sse('error', {'error': str(e.detail)})
            return
        except Exception:
            logger.exception("ai_stream_failed", extra={"user_id": user.id})
            yield _sse('error', {'error': ProviderRequestFailed.default_detail})
            return

        yield _sse('complete', {'content': ''.join(parts)})

    response = StreamingHttpResponse(
        event_stream(),
        content_type='text/event-stream',
    )
    response['Cache-Control'] = 'no-cache'
    response['X-Accel-Buffering'] = 'no'

    return response
