"""
Unit tests for decision classification and the security event emitter:
log routing, wire format, listener isolation and rotation.
"""

import json

import pytest

from bola_lab.auth.authorization import (
    Action,
    AuthorizationEngine,
    EnforcingPolicy,
    NonEnforcingPolicy,
    ResourceRef,
    ResourceType,
    authorize_role,
)
from bola_lab.events.emitter import SecurityEventEmitter, classify_decision
from bola_lab.events.taxonomy import EventKey, Severity


def _lines(path):
    if not path.exists():
        return []
    with path.open('r', encoding='utf-8') as handle:
        return [json.loads(line) for line in handle if line.strip()]


@pytest.fixture
def emitter(tmp_path):
    emitter = SecurityEventEmitter(tmp_path / 'logs', source='secure')
    yield emitter
    emitter.close()


@pytest.mark.unit
class TestClassifyDecision:

    @pytest.mark.parametrize('action, expected', [
        (Action.READ, EventKey.UNAUTHORIZED_ACCESS_BLOCKED),
        (Action.UPDATE, EventKey.UNAUTHORIZED_UPDATE_BLOCKED),
        (Action.DELETE, EventKey.UNAUTHORIZED_DELETE_BLOCKED),
    ])
    def test_deny(self, enforcing_engine, alice, action, expected):
        decision = enforcing_engine.authorize(alice, ResourceRef(ResourceType.ORDER, 2), action)

        assert classify_decision(decision) == (expected, Severity.HIGH, True)

    def test_not_found(self, enforcing_engine, alice):
        decision = enforcing_engine.authorize(alice, ResourceRef(ResourceType.ORDER, 999))

        assert classify_decision(decision) == (EventKey.NONEXISTENT_RESOURCE_BLOCKED, Severity.HIGH, True)

    def test_admin_override(self, enforcing_engine, admin):
        decision = enforcing_engine.authorize(admin, ResourceRef(ResourceType.ORDER, 2))

        assert classify_decision(decision) == (EventKey.ADMIN_ACCESS_GRANTED, Severity.LOW, False)

    def test_owner_access(self, enforcing_engine, alice):
        decision = enforcing_engine.authorize(alice, ResourceRef(ResourceType.ORDER, 1))

        assert classify_decision(decision) == (EventKey.RESOURCE_ACCESS_GRANTED, Severity.INFO, False)

    @pytest.mark.parametrize('action, expected', [
        (Action.READ, EventKey.BOLA_ATTEMPT),
        (Action.UPDATE, EventKey.BOLA_UPDATE),
        (Action.DELETE, EventKey.BOLA_DELETE),
    ])
    def test_cross_owner_without_enforcement(self, non_enforcing_engine, alice, action, expected):
        decision = non_enforcing_engine.authorize(alice, ResourceRef(ResourceType.ORDER, 2), action)

        assert classify_decision(decision) == (expected, Severity.HIGH, False)

    def test_role_checks(self, alice, admin):
        assert classify_decision(authorize_role(admin)) == (EventKey.ADMIN_ACCESS_GRANTED, Severity.LOW, False)
        assert classify_decision(authorize_role(alice)) == (EventKey.ADMIN_ACCESS_DENIED, Severity.MEDIUM, True)


@pytest.mark.unit
class TestSecurityEventEmitter:

    def test_denied_decision_is_written_to_security_log(self, emitter, store, alice):
        engine = AuthorizationEngine(store, EnforcingPolicy())
        decision = engine.authorize(alice, ResourceRef(ResourceType.ORDER, 2), Action.UPDATE)

        emitter.emit_decision(decision)

        records = _lines(emitter.security_log_path)
        assert len(records) == 1
        record = records[0]
        assert record['event'] == 'UNAUTHORIZED_UPDATE_BLOCKED'
        assert record['severity'] == 'HIGH'
        assert record['subjectId'] == alice.id
        assert record['subjectEmail'] == alice.email
        assert record['resourceType'] == 'order'
        assert record['resourceId'] == '2'
        assert record['ownerId'] == 2
        assert record['blocked'] is True
        assert record['source'] == 'secure'
        assert record['timestamp']
        assert record['message']

    def test_owner_access_goes_to_access_log_only(self, emitter, enforcing_engine, alice):
        emitter.emit_decision(enforcing_engine.authorize(alice, ResourceRef(ResourceType.ORDER, 1)))

        assert _lines(emitter.security_log_path) == []
        access = _lines(emitter.access_log_path)
        assert [record['event'] for record in access] == ['RESOURCE_ACCESS_GRANTED']

    def test_bola_event_reports_owner_snapshot(self, emitter, non_enforcing_engine, alice, bob):
        emitter.emit_decision(non_enforcing_engine.authorize(alice, ResourceRef(ResourceType.ORDER, 2)))

        record = _lines(emitter.security_log_path)[0]
        assert record['event'] == 'BOLA_ATTEMPT'
        assert record['blocked'] is False
        assert record['ownerId'] == bob.id
        assert record['subjectId'] == alice.id

    def test_free_form_event_key(self, emitter):
        event = emitter.emit('custom_probe', payload={'message': 'probe', 'detail': 'x'})

        record = _lines(emitter.security_log_path)[0]
        assert event.event == 'CUSTOM_PROBE'
        assert record['severity'] == 'LOW'
        assert record['detail'] == 'x'

    def test_listeners_receive_records_and_failures_are_isolated(self, emitter):
        received = []

        def broken_listener(record):
            raise RuntimeError("listener exploded")

        emitter.add_listener(broken_listener)
        emitter.add_listener(received.append)

        emitter.emit(EventKey.LOGIN_FAILURE, payload={'subject_email': 'x@example.com', 'blocked': True})

        assert len(received) == 1
        assert received[0]['event'] == 'LOGIN_FAILURE'
        assert len(_lines(emitter.security_log_path)) == 1

    def test_info_events_do_not_reach_listeners(self, emitter):
        received = []
        emitter.add_listener(received.append)

        emitter.emit(EventKey.RESOURCE_ACCESS_GRANTED)

        assert received == []

    def test_rotation_keeps_every_line_whole(self, tmp_path):
        emitter = SecurityEventEmitter(tmp_path / 'rotating', source='secure', max_bytes=600, backup_count=2)
        try:
            for index in range(40):
                emitter.emit(EventKey.LOGIN_FAILURE, payload={'message': f"attempt {index}", 'blocked': True})
        finally:
            emitter.close()

        files = sorted((tmp_path / 'rotating').glob('security.log*'))
        assert 1 < len(files) <= 3
        for path in files:
            for record in _lines(path):
                assert record['event'] == 'LOGIN_FAILURE'

        latest = _lines(tmp_path / 'rotating' / 'security.log')
        assert latest[-1]['message'] == 'attempt 39'

    def test_emit_outside_request_has_no_request_fields(self, emitter):
        emitter.emit(EventKey.LOGIN_SUCCESS)

        record = _lines(emitter.security_log_path)[0]
        assert 'method' not in record
        assert record['source'] == 'secure'


@pytest.mark.unit
def test_non_enforcing_policy_flag(store):
    assert AuthorizationEngine(store, NonEnforcingPolicy()).enforces_ownership is False
