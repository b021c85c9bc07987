"""
URL Configuration for AI Notes
"""
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include
from django.conf import settings


def health_check(request):
    return JsonResponse({'status': 'ok'})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/health/', health_check, name='health'),

    # API endpoints
    path('api/auth/', include('apps.auth_app.urls')),
    path('api/', include('apps.notes.urls')),
    path('api/', include('apps.ai.urls')),
]

# Debug toolbar (only in development)
if settings.DEBUG:
    try:
        import debug_toolbar
        urlpatterns = [
            path('__debug__/', include(debug_toolbar.urls)),
        ] + urlpatterns
    except ImportError:
        pass  # debug_toolbar not installed
