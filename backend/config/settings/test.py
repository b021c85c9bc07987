"""
Test settings: in-memory SQLite, no external services.

Usage:
    pytest                      (DJANGO_SETTINGS_MODULE set in pyproject.toml)
    TEST_DATABASE_URL=postgresql://... pytest   to run against PostgreSQL
"""
from .development import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': env.db('TEST_DATABASE_URL', default='sqlite://:memory:'),
}

# Disable debug toolbar in tests (avoids middleware issues)
INSTALLED_APPS = [
    app for app in INSTALLED_APPS
    if app != 'debug_toolbar'
]
MIDDLEWARE = [
    mw for mw in MIDDLEWARE
    if mw != 'debug_toolbar.middleware.DebugToolbarMiddleware'
]

# Fast password hashing
PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

ENCRYPTION_KEY = 'test-encryption-key'

# Never fall back to a real provider key from the environment
AI_DEFAULT_CREDENTIALS = None

# Emit every fragment immediately unless a test overrides it
AI_STREAM_CHUNK_SIZE = 1
AI_STREAM_FLUSH_INTERVAL = 0.0

LOGGING['loggers']['apps']['level'] = 'WARNING'
