"""
Custom exceptions for AI Notes
"""
from rest_framework.exceptions import APIException


class ApiKeyConflict(APIException):
    """Raised when a key for the same provider and model already exists"""
    status_code = 409
    default_detail = 'An API key for this provider and model already exists'
    default_code = 'api_key_conflict'


class MissingCredentialsError(APIException):
    """Raised before any provider call when no API key can be resolved"""
    status_code = 400
    default_detail = 'No API key configured'
    default_code = 'missing_credentials'


class ProviderRequestFailed(APIException):
    """Raised when the completion provider could not serve the request"""
    status_code = 502
    default_detail = 'AI processing failed'
    default_code = 'provider_request_failed'
