"""
Event classification.

``classify`` is a pure function from a raw log record (security event or
access record) to a ``ClassifiedEvent``. Category resolution order:

1. an explicit ``bola`` marker in the event key
2. the first matching resource-path rule (auth, orders, users, payments,
   admin, monitoring)
3. ``general``
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from bola_lab.events.taxonomy import (
    EventCategory,
    EventMeta,
    Severity,
    describe_event,
    is_blocked_key,
)

# (category, substrings of the lower-cased resource path)
_PATH_RULES = (
    (EventCategory.ORDERS, ('/orders',)),
    (EventCategory.USERS, ('/users',)),
    (EventCategory.PAYMENTS, ('/payments',)),
    (EventCategory.ADMIN, ('/admin', '/security')),
    (EventCategory.MONITORING, ('/health', '/stats')),
)

_METHOD_VERBS = {
    'GET': 'Read',
    'POST': 'Creation',
    'PUT': 'Update',
    'PATCH': 'Update',
    'DELETE': 'Deletion',
}


def _text(value: Any) -> str:
    return str(value or '').lower()


def event_key_of(record: Mapping[str, Any]) -> str:
    return str(record.get('event') or record.get('securityEvent') or '').strip().upper()


def resolve_category(record: Mapping[str, Any]) -> EventCategory:
    resource = _text(record.get('resource') or record.get('endpoint') or record.get('url'))
    action = _text(record.get('action'))
    event = _text(record.get('event'))
    security_event = _text(record.get('securityEvent'))

    if 'bola' in event or 'bola' in security_event:
        return EventCategory.BOLA
    if '/auth' in resource or 'login' in resource or 'login' in action:
        return EventCategory.AUTH
    for category, fragments in _PATH_RULES:
        if any(fragment in resource for fragment in fragments):
            return category
    return EventCategory.GENERAL


def build_intent_label(category: EventCategory, method: str) -> str:
    verb = _METHOD_VERBS.get(method, method)
    if category is EventCategory.AUTH:
        return 'Login attempt' if method == 'POST' else 'Session check'
    if category is EventCategory.MONITORING:
        return 'Health / monitoring ping'
    if category is EventCategory.BOLA:
        return 'BOLA pattern detected'
    noun = {
        EventCategory.ORDERS: 'of orders',
        EventCategory.USERS: 'of users',
        EventCategory.PAYMENTS: 'of payments',
        EventCategory.ADMIN: 'privileged',
    }.get(category, 'general')
    return f"{verb} {noun}"


@dataclass(frozen=True)
class ClassifiedEvent:
    """A log record with its category and the flags the aggregator folds."""

    record: Mapping[str, Any] = field(repr=False)
    category: EventCategory
    event_key: str
    source: Optional[str]
    severity: Optional[Severity]
    blocked: bool
    critical: bool
    method: str
    endpoint: str
    meta: EventMeta

    @property
    def intent(self) -> str:
        return build_intent_label(self.category, self.method)

    def to_dict(self) -> Dict[str, Any]:
        """Record enriched with the fields the dashboard renders."""
        enriched = dict(self.record)
        enriched.update({
            'requestType': self.category.key,
            'requestLabel': self.category.label,
            'requestColor': self.category.color,
            'intent': self.intent,
            'methodLabel': self.method,
            'eventMeta': self.meta.to_dict(),
        })
        return enriched


def classify(record: Mapping[str, Any]) -> ClassifiedEvent:
    """Classify one raw log record. Never raises for well-formed mappings."""
    event_key = event_key_of(record)
    severity = Severity.parse(record.get('severity')) if record.get('severity') else None
    method = str(record.get('method') or 'GET').upper()
    endpoint = str(record.get('resource') or record.get('endpoint') or record.get('url') or 'unknown')
    source = record.get('source')

    return ClassifiedEvent(
        record=record,
        category=resolve_category(record),
        event_key=event_key,
        source=str(source) if source else None,
        severity=severity,
        blocked=is_blocked_key(event_key),
        critical=severity is not None and severity.is_critical,
        method=method,
        endpoint=endpoint,
        meta=describe_event(event_key)
    )


__all__ = [
    'ClassifiedEvent',
    'classify',
    'resolve_category',
    'build_intent_label',
    'event_key_of',
]
