"""
Ownership Authorization Engine

Decides whether a subject may act on a single object. The engine is pure: it
consults the resource owner lookup, returns an immutable
``AuthorizationDecision`` and emits nothing. Callers pass the decision to the
security event emitter and render it at the HTTP boundary.

Decision rules:
- Admin subjects get ALLOW ("admin override") for any existing resource and
  NOT_FOUND for absent ones.
- ``user`` resources are owned reflexively: a non-admin subject owns exactly
  the user record whose id equals its own, no lookup is performed.
- Other resources are resolved through ``lookup_owner``; absent resources are
  NOT_FOUND, foreign ones DENY, own ones ALLOW.

The ownership check itself is a pluggable ``OwnershipPolicy``. The enforcing
policy implements the rules above; the non-enforcing policy reproduces a
BOLA-vulnerable API by allowing cross-owner access while still reporting the
owner it read so the access can be flagged.

DENY and NOT_FOUND are values, never exceptions, and both render as 404.
Lookup failures propagate as InfrastructureError.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Tuple

from bola_lab.auth.exceptions import ErrorCode, InputError
from bola_lab.auth.identity import Role, Subject

REASON_ADMIN_OVERRIDE = 'admin override'
REASON_OWNER = 'owner'
REASON_NOT_OWNER = 'not owner'
REASON_NOT_FOUND = 'resource not found'
REASON_NOT_ENFORCED = 'ownership not enforced'
REASON_ROLE_GRANTED = 'role granted'
REASON_ROLE_REQUIRED = 'role required'

NOT_FOUND_MESSAGE = 'Resource not found or not permitted'

_RESOURCE_ID_PATTERN = re.compile(r"[0-9]+")


class ResourceType(Enum):
    ORDER = 'order'
    USER = 'user'
    PAYMENT = 'payment'


class Action(Enum):
    READ = 'read'
    UPDATE = 'update'
    DELETE = 'delete'


class Outcome(Enum):
    ALLOW = 'ALLOW'
    DENY = 'DENY'
    NOT_FOUND = 'NOT_FOUND'


class OwnerLookup(Protocol):
    def lookup_owner(self, resource_type: str, resource_id: int) -> Optional[int]:
        ...


@dataclass(frozen=True)
class ResourceRef:
    """Object targeted by an operation; ``id`` is always a positive integer."""

    type: ResourceType
    id: int

    def __post_init__(self):
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise InputError(
                f"Resource id must be a positive integer, got {self.id!r}",
                error_code=ErrorCode.INPUT_INVALID_RESOURCE_ID,
                user_message="Invalid resource id"
            )


@dataclass(frozen=True)
class AuthorizationDecision:
    """
    Result of one authorization check.

    ``owner_id`` is the ownership snapshot read during the decision; events
    built from the decision always report this value.
    """

    subject: Subject
    resource: Optional[ResourceRef]
    outcome: Outcome
    reason: str
    action: Action = Action.READ
    owner_id: Optional[int] = None
    enforced: bool = True

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW

    @property
    def admin_override(self) -> bool:
        return self.allowed and self.reason == REASON_ADMIN_OVERRIDE

    @property
    def cross_owner(self) -> bool:
        """True when a non-admin reached another subject's existing resource."""
        return (
            self.owner_id is not None and
            not self.subject.is_admin and
            self.owner_id != self.subject.id
        )


class OwnershipPolicy(ABC):
    """Strategy deciding the outcome for a non-admin subject."""

    enforces_ownership = True

    @abstractmethod
    def evaluate(
        self,
        subject: Subject,
        resource: ResourceRef,
        lookup: OwnerLookup
    ) -> Tuple[Outcome, str, Optional[int]]:
        """Return ``(outcome, reason, owner_id)``."""


class EnforcingPolicy(OwnershipPolicy):
    """Conformant policy: only owners pass."""

    enforces_ownership = True

    def evaluate(self, subject, resource, lookup):
        if resource.type is ResourceType.USER:
            if resource.id == subject.id:
                return Outcome.ALLOW, REASON_OWNER, subject.id
            return Outcome.DENY, REASON_NOT_OWNER, None

        owner_id = lookup.lookup_owner(resource.type.value, resource.id)
        if owner_id is None:
            return Outcome.NOT_FOUND, REASON_NOT_FOUND, None
        if owner_id == subject.id:
            return Outcome.ALLOW, REASON_OWNER, owner_id
        return Outcome.DENY, REASON_NOT_OWNER, owner_id


class NonEnforcingPolicy(OwnershipPolicy):
    """
    Deliberately vulnerable policy: any authenticated subject reaches any
    existing resource. The owner is still read so cross-owner access can be
    reported.
    """

    enforces_ownership = False

    def evaluate(self, subject, resource, lookup):
        owner_id = lookup.lookup_owner(resource.type.value, resource.id)
        if owner_id is None:
            return Outcome.NOT_FOUND, REASON_NOT_FOUND, None
        if owner_id == subject.id:
            return Outcome.ALLOW, REASON_OWNER, owner_id
        return Outcome.ALLOW, REASON_NOT_ENFORCED, owner_id


def create_policy(enforce_ownership: bool) -> OwnershipPolicy:
    return EnforcingPolicy() if enforce_ownership else NonEnforcingPolicy()


class AuthorizationEngine:
    """
    Ownership authorization over a resource owner lookup.

    Holds no mutable state; one engine serves all concurrent requests.
    """

    def __init__(self, lookup: OwnerLookup, policy: Optional[OwnershipPolicy] = None):
        self.lookup = lookup
        self.policy = policy or EnforcingPolicy()

    @property
    def enforces_ownership(self) -> bool:
        return self.policy.enforces_ownership

    def authorize(
        self,
        subject: Subject,
        resource: ResourceRef,
        action: Action = Action.READ
    ) -> AuthorizationDecision:
        """
        Decide ALLOW / DENY / NOT_FOUND for ``subject`` acting on ``resource``.

        Raises:
            InfrastructureError: When the owner lookup backend fails
        """
        if subject.is_admin:
            owner_id = self.lookup.lookup_owner(resource.type.value, resource.id)
            if owner_id is None:
                outcome, reason = Outcome.NOT_FOUND, REASON_NOT_FOUND
            else:
                outcome, reason = Outcome.ALLOW, REASON_ADMIN_OVERRIDE
        else:
            outcome, reason, owner_id = self.policy.evaluate(subject, resource, self.lookup)

        return AuthorizationDecision(
            subject=subject,
            resource=resource,
            outcome=outcome,
            reason=reason,
            action=action,
            owner_id=owner_id,
            enforced=self.policy.enforces_ownership
        )


def authorize_role(subject: Subject, required: Role = Role.ADMIN) -> AuthorizationDecision:
    """Role-only policy used by admin endpoints; ownership is not consulted."""
    if subject.role is required:
        return AuthorizationDecision(subject, None, Outcome.ALLOW, REASON_ROLE_GRANTED)
    return AuthorizationDecision(subject, None, Outcome.DENY, REASON_ROLE_REQUIRED)


def parse_resource_id(raw: Any) -> int:
    """
    Validate a route parameter as a positive integer resource id.

    Raises:
        InputError: For non-numeric, signed, fractional or non-positive values
    """
    if isinstance(raw, bool):
        value = None
    elif isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and _RESOURCE_ID_PATTERN.fullmatch(raw):
        value = int(raw)
    else:
        value = None

    if value is None or value <= 0:
        raise InputError(
            f"Invalid resource id {raw!r}",
            error_code=ErrorCode.INPUT_INVALID_RESOURCE_ID,
            user_message="Invalid resource id"
        )
    return value


def decision_status(decision: AuthorizationDecision) -> int:
    """HTTP status for a decision: 200 on ALLOW, 404 for DENY and NOT_FOUND alike."""
    return 200 if decision.allowed else 404


__all__ = [
    'ResourceType',
    'Action',
    'Outcome',
    'ResourceRef',
    'AuthorizationDecision',
    'OwnerLookup',
    'OwnershipPolicy',
    'EnforcingPolicy',
    'NonEnforcingPolicy',
    'AuthorizationEngine',
    'create_policy',
    'authorize_role',
    'parse_resource_id',
    'decision_status',
    'NOT_FOUND_MESSAGE',
    'REASON_ADMIN_OVERRIDE',
    'REASON_OWNER',
    'REASON_NOT_OWNER',
    'REASON_NOT_FOUND',
    'REASON_NOT_ENFORCED',
]
