"""
Identity, ownership authorization and the exception taxonomy.

Route decorators live in ``bola_lab.auth.decorators`` and are imported from
there explicitly, since they depend on the event pipeline.
"""

from bola_lab.auth.authorization import (
    Action,
    AuthorizationDecision,
    AuthorizationEngine,
    EnforcingPolicy,
    NonEnforcingPolicy,
    Outcome,
    ResourceRef,
    ResourceType,
    authorize_role,
    create_policy,
    decision_status,
    parse_resource_id,
)
from bola_lab.auth.exceptions import (
    AuthenticationError,
    BolaLabException,
    ConfigurationError,
    ErrorCode,
    InfrastructureError,
    InputError,
    StreamDeliveryError,
    create_safe_error_response,
)
from bola_lab.auth.identity import IdentityResolver, Role, Subject, require_subject

__all__ = [
    'Action',
    'AuthorizationDecision',
    'AuthorizationEngine',
    'EnforcingPolicy',
    'NonEnforcingPolicy',
    'Outcome',
    'ResourceRef',
    'ResourceType',
    'authorize_role',
    'create_policy',
    'decision_status',
    'parse_resource_id',
    'AuthenticationError',
    'BolaLabException',
    'ConfigurationError',
    'ErrorCode',
    'InfrastructureError',
    'InputError',
    'StreamDeliveryError',
    'create_safe_error_response',
    'IdentityResolver',
    'Role',
    'Subject',
    'require_subject',
]
