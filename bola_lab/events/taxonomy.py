"""
Security event taxonomy.

Closed enumerations for event keys, request categories and severities. Each
member carries its display metadata so formatting is an exhaustive lookup on
the enum rather than a string-keyed table; keys read back from the log that
are not members (older or foreign producers) get a humanized fallback.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Severity(Enum):
    INFO = ('INFO', 0)
    LOW = ('LOW', 1)
    MEDIUM = ('MEDIUM', 2)
    HIGH = ('HIGH', 3)
    CRITICAL = ('CRITICAL', 4)

    def __init__(self, label: str, rank: int):
        self.label = label
        self.rank = rank

    @property
    def is_critical(self) -> bool:
        return self.rank >= Severity.HIGH.rank

    @classmethod
    def parse(cls, value: Any) -> Optional['Severity']:
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return None


class EventCategory(Enum):
    """Semantic category of a request or security event."""

    AUTH = ('auth', 'Authentication / Login', '#38bdf8')
    ORDERS = ('orders', 'Order Operations', '#f97316')
    USERS = ('users', 'User Management', '#c084fc')
    PAYMENTS = ('payments', 'Payments and Finance', '#ec4899')
    ADMIN = ('admin', 'Panel and Administration', '#14b8a6')
    MONITORING = ('monitoring', 'Monitoring / Health', '#22d3ee')
    BOLA = ('bola', 'BOLA Alerts', '#f43f5e')
    GENERAL = ('general', 'General Traffic', '#94a3b8')

    def __init__(self, key: str, label: str, color: str):
        self.key = key
        self.label = label
        self.color = color


class EventKey(Enum):
    """Known security event keys with display label, description and color."""

    ADMIN_ACCESS_GRANTED = ('Admin access granted', 'Privileged operation authorized', '#10b981')
    ADMIN_ACCESS_DENIED = ('Admin access denied', 'Privileged attempt blocked', '#f97316')
    UNAUTHORIZED_ACCESS_BLOCKED = (
        'Access blocked', 'Read of another subject\'s resource stopped', '#10b981')
    UNAUTHORIZED_UPDATE_BLOCKED = (
        'Update blocked', 'Attempt to modify another subject\'s resource stopped', '#f59e0b')
    UNAUTHORIZED_DELETE_BLOCKED = (
        'Delete blocked', 'Attempt to delete another subject\'s resource stopped', '#f59e0b')
    NONEXISTENT_RESOURCE_BLOCKED = (
        'Unknown resource requested', 'Possible identifier enumeration', '#fb7185')
    BOLA_ATTEMPT = ('BOLA attack detected', 'Foreign resource read without ownership check', '#f43f5e')
    BOLA_UPDATE = ('Foreign resource modified (BOLA)', 'Update without ownership check', '#f97316')
    BOLA_DELETE = ('Foreign resource deleted (BOLA)', 'Delete without ownership check', '#f87171')
    RATE_LIMIT_EXCEEDED = ('Rate limit exceeded', 'Abuse protection triggered', '#fde047')
    UNAUTHENTICATED_ACCESS = ('Unauthenticated access', 'Missing or invalid credential', '#f87171')
    LOGIN_SUCCESS = ('Login succeeded', 'Authentication activity', '#38bdf8')
    LOGIN_FAILURE = ('Authentication failure', 'Invalid credentials', '#f87171')
    ORDER_CREATED = ('Order created', 'Order stored for its owner', '#10b981')
    PAYMENT_CREATED = ('Payment created', 'Financial transaction recorded', '#ec4899')
    USER_DELETED_BY_ADMIN = ('User deleted by admin', 'Administrative action recorded', '#f87171')
    ADMIN_PAYMENTS_ACCESS = ('Financial report viewed', 'Privileged access to payments', '#14b8a6')
    RESOURCE_ACCESS_GRANTED = ('Resource accessed by owner', 'Ownership verified', '#10b981')

    def __init__(self, label: str, description: str, color: str):
        self.label = label
        self.description = description
        self.color = color


@dataclass(frozen=True)
class EventMeta:
    key: str
    label: str
    description: str
    color: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'key': self.key,
            'label': self.label,
            'description': self.description,
            'color': self.color,
        }


DEFAULT_EVENT_META = EventMeta(
    key='GENERAL',
    label='Security event',
    description='Activity recorded by the APIs',
    color='#94a3b8'
)


def humanize_event_key(key: str) -> str:
    """``ORDER_ACCESS_BOLA`` -> ``Order Access Bola``"""
    return ' '.join(word.capitalize() for word in key.lower().split('_') if word)


def describe_event(raw_key: Optional[str]) -> EventMeta:
    """Display metadata for any event key, known or not."""
    key = (raw_key or '').strip().upper()
    if not key:
        return DEFAULT_EVENT_META
    try:
        member = EventKey[key]
    except KeyError:
        return EventMeta(
            key=key,
            label=humanize_event_key(key),
            description=DEFAULT_EVENT_META.description,
            color=DEFAULT_EVENT_META.color
        )
    return EventMeta(key=key, label=member.label, description=member.description, color=member.color)


def is_blocked_key(raw_key: Optional[str]) -> bool:
    """Enforcement actions are the keys naming a block or an unauthorized attempt."""
    key = (raw_key or '').upper()
    return 'BLOCKED' in key or 'UNAUTHORIZED' in key


__all__ = [
    'Severity',
    'EventCategory',
    'EventKey',
    'EventMeta',
    'DEFAULT_EVENT_META',
    'describe_event',
    'humanize_event_key',
    'is_blocked_key',
]
