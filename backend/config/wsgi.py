"""
WSGI config for AI Notes project.

WSGI buffers streaming responses; use ASGI (config.asgi) to serve
``/api/ai/process/`` incrementally.
"""
import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

application = get_wsgi_application()
