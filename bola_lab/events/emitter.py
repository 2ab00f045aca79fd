"""
Security Event Emitter

Turns authorization decisions and other sensitive actions into structured
events and appends them, one JSON object per line, to the rotating security
event log. Owner accesses (severity INFO) go to the access log only.

Writes go through a stdlib ``RotatingFileHandler`` (see
``bola_lab.monitoring.logging.create_rotating_line_logger``): each append and
each rollover runs under the handler lock, so a rotation never splits or
drops a line. The write is synchronous and bounded; callers emit before
building the HTTP response, which gives the decision -> event -> response
ordering.

Registered listeners (the stats aggregator) receive each persisted record
synchronously after the append.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import structlog

from bola_lab.auth.authorization import Action, AuthorizationDecision, Outcome
from bola_lab.auth.identity import Subject
from bola_lab.events.classifier import resolve_category
from bola_lab.events.taxonomy import EventKey, Severity
from bola_lab.monitoring.logging import (
    close_line_logger,
    create_rotating_line_logger,
    get_request_context,
)
from bola_lab.monitoring.metrics import authorization_metrics, event_metrics

logger = structlog.get_logger(__name__)

EventListener = Callable[[Dict[str, Any]], None]

DEFAULT_SEVERITIES = {
    EventKey.ADMIN_ACCESS_GRANTED: Severity.LOW,
    EventKey.ADMIN_ACCESS_DENIED: Severity.MEDIUM,
    EventKey.UNAUTHORIZED_ACCESS_BLOCKED: Severity.HIGH,
    EventKey.UNAUTHORIZED_UPDATE_BLOCKED: Severity.HIGH,
    EventKey.UNAUTHORIZED_DELETE_BLOCKED: Severity.HIGH,
    EventKey.NONEXISTENT_RESOURCE_BLOCKED: Severity.HIGH,
    EventKey.BOLA_ATTEMPT: Severity.HIGH,
    EventKey.BOLA_UPDATE: Severity.HIGH,
    EventKey.BOLA_DELETE: Severity.HIGH,
    EventKey.RATE_LIMIT_EXCEEDED: Severity.MEDIUM,
    EventKey.UNAUTHENTICATED_ACCESS: Severity.MEDIUM,
    EventKey.LOGIN_SUCCESS: Severity.LOW,
    EventKey.LOGIN_FAILURE: Severity.MEDIUM,
    EventKey.ORDER_CREATED: Severity.LOW,
    EventKey.PAYMENT_CREATED: Severity.MEDIUM,
    EventKey.USER_DELETED_BY_ADMIN: Severity.MEDIUM,
    EventKey.ADMIN_PAYMENTS_ACCESS: Severity.LOW,
    EventKey.RESOURCE_ACCESS_GRANTED: Severity.INFO,
}

_BLOCKED_KEYS = {
    Action.READ: EventKey.UNAUTHORIZED_ACCESS_BLOCKED,
    Action.UPDATE: EventKey.UNAUTHORIZED_UPDATE_BLOCKED,
    Action.DELETE: EventKey.UNAUTHORIZED_DELETE_BLOCKED,
}

_BOLA_KEYS = {
    Action.READ: EventKey.BOLA_ATTEMPT,
    Action.UPDATE: EventKey.BOLA_UPDATE,
    Action.DELETE: EventKey.BOLA_DELETE,
}


def classify_decision(decision: AuthorizationDecision) -> Tuple[EventKey, Severity, bool]:
    """
    Event key, severity and blocked flag for a decision.

    NOT_FOUND/DENY -> HIGH, admin override -> LOW, owner access -> INFO.
    Role-only denials are MEDIUM; cross-owner access under the non-enforcing
    policy is reported as a HIGH, unblocked BOLA event.
    """
    if decision.resource is None:
        if decision.allowed:
            return EventKey.ADMIN_ACCESS_GRANTED, Severity.LOW, False
        return EventKey.ADMIN_ACCESS_DENIED, Severity.MEDIUM, True

    if decision.outcome is Outcome.NOT_FOUND:
        return EventKey.NONEXISTENT_RESOURCE_BLOCKED, Severity.HIGH, True
    if decision.outcome is Outcome.DENY:
        return _BLOCKED_KEYS[decision.action], Severity.HIGH, True
    if decision.admin_override:
        return EventKey.ADMIN_ACCESS_GRANTED, Severity.LOW, False
    if decision.cross_owner:
        return _BOLA_KEYS[decision.action], Severity.HIGH, False
    return EventKey.RESOURCE_ACCESS_GRANTED, Severity.INFO, False


def _decision_message(decision: AuthorizationDecision) -> str:
    subject = decision.subject
    if decision.resource is None:
        if decision.allowed:
            return f"Admin {subject.email or subject.id} accessed an admin endpoint"
        return f"User {subject.email or subject.id} attempted to access an admin endpoint"

    target = f"{decision.resource.type.value} {decision.resource.id}"
    if decision.outcome is Outcome.NOT_FOUND:
        return f"User {subject.id} requested non-existent {target}"
    if decision.outcome is Outcome.DENY:
        return f"User {subject.id} attempted to {decision.action.value} {target} owned by another user"
    if decision.admin_override:
        return f"Admin {subject.id} accessed {target} (admin override)"
    if decision.cross_owner:
        return (
            f"User {subject.id} performed {decision.action.value} on {target} "
            f"owned by user {decision.owner_id} without an ownership check"
        )
    return f"User {subject.id} accessed own {target}"


@dataclass(frozen=True)
class SecurityEvent:
    """One persisted security event. Written once, never edited."""

    timestamp: str
    event: str
    severity: Severity
    subject_id: Optional[int] = None
    subject_email: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    owner_id: Optional[int] = None
    blocked: bool = False
    message: str = ''
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        """Wire shape: one JSON object per log line."""
        record = dict(self.extra)
        record.update({
            'timestamp': self.timestamp,
            'event': self.event,
            'severity': self.severity.label,
            'subjectId': self.subject_id,
            'subjectEmail': self.subject_email,
            'resourceType': self.resource_type,
            'resourceId': self.resource_id,
            'blocked': self.blocked,
            'message': self.message,
        })
        if self.owner_id is not None:
            record['ownerId'] = self.owner_id
        return record


class SecurityEventEmitter:
    """
    Appends security events to ``security.log`` and owner accesses to
    ``access.log``.

    Args:
        log_dir: Directory holding both logs
        source: API variant recorded on every event
        max_bytes: Rotation size of each log
        backup_count: Rotated security log files kept
        access_backup_count: Rotated access log files kept
    """

    def __init__(
        self,
        log_dir: Union[str, Path],
        source: str,
        max_bytes: int = 5 * 1024 * 1024,
        backup_count: int = 5,
        access_backup_count: int = 3,
        security_filename: str = 'security.log',
        access_filename: str = 'access.log'
    ):
        self.log_dir = Path(log_dir)
        self.source = source
        self.security_log_path = self.log_dir / security_filename
        self.access_log_path = self.log_dir / access_filename
        self.security_logger = create_rotating_line_logger(
            f"bola_lab.sinks.security.{self.security_log_path}",
            self.security_log_path,
            max_bytes=max_bytes,
            backup_count=backup_count
        )
        self.access_logger = create_rotating_line_logger(
            f"bola_lab.sinks.access.{self.access_log_path}",
            self.access_log_path,
            max_bytes=max_bytes,
            backup_count=access_backup_count
        )
        self._listeners: List[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def emit(
        self,
        event_key: Union[EventKey, str],
        severity: Optional[Severity] = None,
        payload: Optional[Mapping[str, Any]] = None
    ) -> SecurityEvent:
        """
        Build and persist one event.

        Args:
            event_key: Known EventKey or a free-form key
            severity: Defaults to the key's registered severity (LOW if unknown)
            payload: ``subject``, ``resource_type``, ``resource_id``,
                ``owner_id``, ``blocked``, ``message``; remaining keys are
                written as extra fields
        """
        payload = dict(payload or {})
        if isinstance(event_key, EventKey):
            key_name = event_key.name
            severity = severity or DEFAULT_SEVERITIES.get(event_key, Severity.LOW)
        else:
            key_name = str(event_key).upper()
            severity = severity or Severity.LOW

        subject: Optional[Subject] = payload.pop('subject', None)
        resource_id = payload.pop('resource_id', None)
        extra = get_request_context()
        extra['source'] = self.source
        extra.update(payload.pop('extra', {}))

        event = SecurityEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=key_name,
            severity=severity,
            subject_id=subject.id if subject else payload.pop('subject_id', None),
            subject_email=subject.email if subject else payload.pop('subject_email', None),
            resource_type=payload.pop('resource_type', None),
            resource_id=str(resource_id) if resource_id is not None else None,
            owner_id=payload.pop('owner_id', None),
            blocked=bool(payload.pop('blocked', False)),
            message=payload.pop('message', None) or key_name,
            extra=dict(extra, **payload)
        )
        self._write(event)
        return event

    def emit_decision(self, decision: AuthorizationDecision) -> SecurityEvent:
        """Persist the event for an authorization decision, before the response is built."""
        event_key, severity, blocked = classify_decision(decision)

        if decision.resource is None:
            authorization_metrics['role_checks_total'].labels(
                outcome=decision.outcome.value,
                required_role='admin'
            ).inc()
        else:
            authorization_metrics['decisions_total'].labels(
                outcome=decision.outcome.value,
                resource_type=decision.resource.type.value,
                variant=self.source
            ).inc()

        payload: Dict[str, Any] = {
            'subject': decision.subject,
            'blocked': blocked,
            'message': _decision_message(decision),
            'outcome': decision.outcome.value,
            'reason': decision.reason,
            'role': decision.subject.role.value,
        }
        if decision.resource is not None:
            payload.update({
                'resource_type': decision.resource.type.value,
                'resource_id': decision.resource.id,
                'owner_id': decision.owner_id,
                'operation': decision.action.value,
            })
        return self.emit(event_key, severity, payload)

    def _write(self, event: SecurityEvent) -> None:
        record = event.to_record()
        line = json.dumps(record, default=str)

        if event.severity is Severity.INFO:
            self.access_logger.info(line)
            event_metrics['access_records_total'].labels(source=self.source).inc()
            return

        self.security_logger.info(line)
        event_metrics['events_total'].labels(
            severity=event.severity.label,
            category=resolve_category(record).key,
            source=self.source
        ).inc()

        log_method = logger.warning if event.severity.is_critical else logger.info
        log_method(
            "Security event recorded",
            event_key=event.event,
            severity=event.severity.label,
            subject_id=event.subject_id,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            blocked=event.blocked
        )

        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception as e:
                logger.error(
                    "Security event listener failed",
                    listener=getattr(listener, '__name__', type(listener).__name__),
                    error=str(e),
                    exc_info=True
                )

    def close(self) -> None:
        close_line_logger(self.security_logger)
        close_line_logger(self.access_logger)


__all__ = [
    'SecurityEvent',
    'SecurityEventEmitter',
    'DEFAULT_SEVERITIES',
    'classify_decision',
]
