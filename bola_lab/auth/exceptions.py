"""
Exception Taxonomy

Exception classes for the failures that are allowed to raise. Authorization
outcomes (DENY, NOT_FOUND) are deliberately NOT exceptions: they are decision
values returned by the authorization engine and rendered by the route layer.

Taxonomy:
- InputError: malformed resource id or request body (HTTP 400, never a security event)
- AuthenticationError: missing, expired or invalid credential (HTTP 401)
- InfrastructureError: storage/lookup backend unavailable (HTTP 500, logged at ERROR)
- StreamDeliveryError: delivery to a single stream subscriber failed (isolated)
- ConfigurationError: invalid configuration detected at startup

Every exception carries a unique error id, a standardized error code, a safe
user-facing message and a timestamp so responses can be correlated with logs
without disclosing internal details.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Standardized error codes grouped by failure category."""

    # Input Error Codes (1000-1999)
    INPUT_INVALID_RESOURCE_ID = "INPUT_1001"
    INPUT_INVALID_BODY = "INPUT_1002"
    INPUT_UNSUPPORTED_RESOURCE = "INPUT_1003"
    INPUT_CONFLICT = "INPUT_1004"

    # Authentication Error Codes (2000-2999)
    AUTH_TOKEN_MISSING = "AUTH_2001"
    AUTH_TOKEN_INVALID = "AUTH_2002"
    AUTH_TOKEN_EXPIRED = "AUTH_2003"
    AUTH_CREDENTIALS_INVALID = "AUTH_2004"

    # Infrastructure Error Codes (3000-3999)
    INFRA_STORAGE_UNAVAILABLE = "INFRA_3001"
    INFRA_STORAGE_FAILURE = "INFRA_3002"
    INFRA_COUNTER_STORE_FAILURE = "INFRA_3003"

    # Streaming Error Codes (4000-4999)
    STREAM_DELIVERY_FAILED = "STREAM_4001"

    # Configuration Error Codes (5000-5999)
    CONFIG_INVALID = "CONFIG_5001"


class BolaLabException(Exception):
    """
    Base exception for all raised failures in the service.

    Args:
        message: Detailed description for logs
        error_code: Standardized error code for categorization
        user_message: Safe message for client responses
        http_status: HTTP status used when the exception reaches a route
        metadata: Additional context for structured logging
    """

    default_code = ErrorCode.CONFIG_INVALID
    default_user_message = "Request failed"
    default_http_status = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        user_message: Optional[str] = None,
        http_status: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_id = str(uuid.uuid4())
        self.error_code = error_code or self.default_code
        self.user_message = user_message or self.default_user_message
        self.http_status = http_status or self.default_http_status
        self.timestamp = datetime.now(timezone.utc)
        self.metadata = dict(metadata or {})
        self.metadata.update({
            'error_id': self.error_id,
            'error_code': self.error_code.value,
            'exception_type': self.__class__.__name__,
        })


class InputError(BolaLabException):
    """Malformed input: bad resource id or request body. Not a security event."""

    default_code = ErrorCode.INPUT_INVALID_BODY
    default_user_message = "Invalid request"
    default_http_status = 400

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.errors = errors or {}


class AuthenticationError(BolaLabException):
    """Missing or invalid identity."""

    default_code = ErrorCode.AUTH_TOKEN_INVALID
    default_user_message = "Authentication required"
    default_http_status = 401


class InfrastructureError(BolaLabException):
    """
    Backend failure (storage unavailable, lookup failed).

    Never conflated with DENY or NOT_FOUND: it propagates to the route layer
    and becomes a 5xx response.
    """

    default_code = ErrorCode.INFRA_STORAGE_FAILURE
    default_user_message = "Internal server error"
    default_http_status = 500


class StreamDeliveryError(BolaLabException):
    """Delivery to one stream subscriber failed; other subscribers are unaffected."""

    default_code = ErrorCode.STREAM_DELIVERY_FAILED
    default_user_message = "Stream delivery failed"
    default_http_status = 500

    def __init__(self, message: str, subscription_id: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.subscription_id = subscription_id
        self.metadata['subscription_id'] = subscription_id


class ConfigurationError(BolaLabException):
    """Invalid configuration detected while building the application."""

    default_code = ErrorCode.CONFIG_INVALID
    default_user_message = "Service misconfigured"
    default_http_status = 500


def get_error_category(error_code: ErrorCode) -> str:
    """Map an error code to its category name."""
    prefix = error_code.value.split('_', 1)[0]
    return {
        'INPUT': 'input',
        'AUTH': 'authentication',
        'INFRA': 'infrastructure',
        'STREAM': 'streaming',
        'CONFIG': 'configuration',
    }.get(prefix, 'unknown')


def create_safe_error_response(exception: BolaLabException) -> Dict[str, Any]:
    """
    Create a safe error response for client consumption.

    Only the user-facing message and correlation identifiers are exposed;
    the internal message stays in the logs.
    """
    response = {
        'success': False,
        'error': exception.user_message,
        'error_code': exception.error_code.value,
        'error_id': exception.error_id,
        'timestamp': exception.timestamp.isoformat(),
    }
    if isinstance(exception, InputError) and exception.errors:
        response['errors'] = exception.errors
    return response


__all__ = [
    'ErrorCode',
    'BolaLabException',
    'InputError',
    'AuthenticationError',
    'InfrastructureError',
    'StreamDeliveryError',
    'ConfigurationError',
    'get_error_category',
    'create_safe_error_response',
]
