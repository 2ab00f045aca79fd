"""
Identity Resolver

Turns an inbound bearer credential into a ``Subject``. Tokens are HS256 JWTs
signed with PyJWT carrying the claims ``{id, email, name, role, exp}``.

Every failure (missing header, malformed token, bad signature, expiry, claims
that do not describe a valid subject) raises ``AuthenticationError`` so the
HTTP boundary can answer 401 without distinguishing the cause to the client.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Mapping, Optional

import jwt
import structlog
from flask import g, request

from bola_lab.auth.exceptions import AuthenticationError, ErrorCode
from bola_lab.services import get_services

logger = structlog.get_logger(__name__)


class Role(Enum):
    USER = 'user'
    ADMIN = 'admin'


@dataclass(frozen=True)
class Subject:
    """Authenticated principal, immutable for the lifetime of a request."""

    id: int
    role: Role
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role.value,
        }


def extract_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
    """Return the token of an ``Authorization: Bearer <token>`` header."""
    if not authorization_header:
        return None
    scheme, _, token = authorization_header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


class IdentityResolver:
    """
    Issues and verifies signed identity tokens.

    Args:
        secret_key: HMAC signing key
        algorithm: JWT algorithm (HS256)
        expiration_hours: Token lifetime
    """

    def __init__(self, secret_key: str, algorithm: str = 'HS256', expiration_hours: int = 24):
        if not secret_key:
            raise ValueError("JWT secret key is required")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expiration = timedelta(hours=expiration_hours)

    def issue_token(self, user: Mapping[str, Any]) -> str:
        """Sign a token for a stored user record."""
        now = datetime.now(timezone.utc)
        claims = {
            'id': user['id'],
            'email': user.get('email'),
            'name': user.get('name'),
            'role': user.get('role', Role.USER.value),
            'iat': now,
            'exp': now + self.expiration,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def resolve(self, token: Optional[str]) -> Subject:
        """
        Verify a token and build the Subject it describes.

        Raises:
            AuthenticationError: For any missing or invalid credential
        """
        if not token:
            raise AuthenticationError(
                "Access token missing",
                error_code=ErrorCode.AUTH_TOKEN_MISSING,
                user_message="Access token required"
            )

        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={'require': ['exp', 'id']}
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError(
                "Access token expired",
                error_code=ErrorCode.AUTH_TOKEN_EXPIRED,
                user_message="Invalid or expired token"
            ) from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(
                f"Access token rejected: {e}",
                error_code=ErrorCode.AUTH_TOKEN_INVALID,
                user_message="Invalid or expired token"
            ) from e

        subject_id = claims.get('id')
        if not isinstance(subject_id, int) or isinstance(subject_id, bool) or subject_id <= 0:
            raise AuthenticationError(
                "Token subject id is not a positive integer",
                error_code=ErrorCode.AUTH_TOKEN_INVALID,
                user_message="Invalid or expired token"
            )

        try:
            role = Role(claims.get('role', Role.USER.value))
        except ValueError as e:
            raise AuthenticationError(
                f"Token carries unknown role {claims.get('role')!r}",
                error_code=ErrorCode.AUTH_TOKEN_INVALID,
                user_message="Invalid or expired token"
            ) from e

        return Subject(
            id=subject_id,
            role=role,
            email=claims.get('email'),
            name=claims.get('name')
        )

    def resolve_request(self) -> Subject:
        """Resolve the Subject of the current Flask request."""
        return self.resolve(extract_bearer_token(request.headers.get('Authorization')))


def require_subject(func: Callable) -> Callable:
    """
    Route decorator that authenticates the request and stores the Subject
    in ``flask.g.subject``. AuthenticationError propagates to the 401 handler.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        subject = get_services().identity_resolver.resolve_request()
        g.subject = subject
        return func(*args, **kwargs)

    return wrapper


def current_subject() -> Optional[Subject]:
    """Subject stored by ``require_subject``, or None before authentication."""
    return getattr(g, 'subject', None)


__all__ = [
    'Role',
    'Subject',
    'IdentityResolver',
    'extract_bearer_token',
    'require_subject',
    'current_subject',
]
