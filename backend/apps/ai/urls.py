"""
URL configuration for ai app
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from apps.ai.views import AIRequestLogViewSet, ApiKeyViewSet, process_text

router = DefaultRouter()
router.register(r'api-keys', ApiKeyViewSet, basename='api-key')
router.register(r'logs', AIRequestLogViewSet, basename='ai-log')

urlpatterns = [
    path('ai/process/', process_text, name='ai-process'),
    path('', include(router.urls)),
]
