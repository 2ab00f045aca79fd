"""
Object-level authorization through the HTTP API.

The same requests run against the secure and the vulnerable variant: the
secure variant answers DENY and NOT_FOUND with one identical 404 body and
records a blocked event, the vulnerable variant serves cross-owner objects
and records a BOLA event for each one.
"""

import pytest

from bola_lab.auth.authorization import NOT_FOUND_MESSAGE
from bola_lab.auth.exceptions import InfrastructureError

ALICE_ID = 1
BOB_ID = 2
CHARLIE_ID = 3
ADMIN_ID = 4

NOT_FOUND_BODY = {'success': False, 'error': NOT_FOUND_MESSAGE}


@pytest.mark.integration
@pytest.mark.security
class TestSecureVariant:

    def test_owner_reads_own_order(self, secure_api):
        response = secure_api.get('/api/orders/1', as_user=ALICE_ID)

        assert response.status_code == 200
        order = response.get_json()['order']
        assert order['id'] == 1
        assert 'userId' not in order
        assert 'security_note' not in response.get_json()
        assert secure_api.security_events() == []
        granted = [record for record in secure_api.access_records()
                   if record.get('event') == 'RESOURCE_ACCESS_GRANTED']
        assert len(granted) == 1

    def test_denied_and_missing_are_indistinguishable(self, secure_api):
        denied = secure_api.get('/api/orders/3', as_user=ALICE_ID)
        missing = secure_api.get('/api/orders/999', as_user=ALICE_ID)

        assert denied.status_code == missing.status_code == 404
        assert denied.get_json() == missing.get_json() == NOT_FOUND_BODY

        events = secure_api.security_events()
        assert [record['event'] for record in events] == [
            'UNAUTHORIZED_ACCESS_BLOCKED',
            'NONEXISTENT_RESOURCE_BLOCKED',
        ]
        assert events[0]['subjectId'] == ALICE_ID
        assert events[0]['resourceId'] == '3'
        assert events[0]['ownerId'] == BOB_ID
        assert events[0]['severity'] == 'HIGH'
        assert events[0]['blocked'] is True
        assert events[0]['source'] == 'secure'
        assert events[0]['method'] == 'GET'
        assert events[0]['resource'] == '/api/orders/3'

    def test_update_of_foreign_order_is_blocked(self, secure_api):
        response = secure_api.put('/api/orders/3', as_user=ALICE_ID, json={'status': 'cancelled'})

        assert response.status_code == 404
        assert response.get_json() == NOT_FOUND_BODY
        assert secure_api.services.store.get_order(3)['status'] == 'pending'
        assert [record['event'] for record in secure_api.security_events()] == ['UNAUTHORIZED_UPDATE_BLOCKED']

    def test_delete_of_foreign_order_is_blocked(self, secure_api):
        response = secure_api.delete('/api/orders/4', as_user=ALICE_ID)

        assert response.status_code == 404
        assert secure_api.services.store.get_order(4) is not None
        assert [record['event'] for record in secure_api.security_events()] == ['UNAUTHORIZED_DELETE_BLOCKED']

    def test_owner_updates_and_deletes(self, secure_api):
        updated = secure_api.put('/api/orders/2', as_user=ALICE_ID, json={'status': 'delivered'})
        deleted = secure_api.delete('/api/orders/2', as_user=ALICE_ID)

        assert updated.status_code == 200
        assert updated.get_json()['status'] == 'delivered'
        assert deleted.status_code == 200
        assert secure_api.services.store.get_order(2) is None

    def test_admin_override_is_recorded(self, secure_api):
        response = secure_api.get('/api/orders/5', as_user=ADMIN_ID)

        assert response.status_code == 200
        events = secure_api.security_events()
        assert len(events) == 1
        assert events[0]['event'] == 'ADMIN_ACCESS_GRANTED'
        assert events[0]['severity'] == 'LOW'
        assert events[0]['ownerId'] == CHARLIE_ID
        assert events[0]['blocked'] is False

    def test_admin_request_for_missing_object(self, secure_api):
        response = secure_api.get('/api/orders/999', as_user=ADMIN_ID)

        assert response.status_code == 404
        assert secure_api.events_named('NONEXISTENT_RESOURCE_BLOCKED')

    def test_user_profiles_are_reflexive(self, secure_api):
        own = secure_api.get(f"/api/users/{ALICE_ID}", as_user=ALICE_ID)
        foreign = secure_api.get(f"/api/users/{BOB_ID}", as_user=ALICE_ID)
        unknown = secure_api.get('/api/users/999', as_user=ALICE_ID)

        assert own.status_code == 200
        assert own.get_json()['user']['email'] == 'alice@example.com'
        assert 'password' not in own.get_json()['user']
        assert foreign.status_code == unknown.status_code == 404
        assert foreign.get_json() == unknown.get_json() == NOT_FOUND_BODY
        assert [record['event'] for record in secure_api.security_events()] == [
            'UNAUTHORIZED_ACCESS_BLOCKED',
            'UNAUTHORIZED_ACCESS_BLOCKED',
        ]

    def test_admin_reads_missing_user(self, secure_api):
        response = secure_api.get('/api/users/999', as_user=ADMIN_ID)

        assert response.status_code == 404
        assert [record['event'] for record in secure_api.security_events()] == ['NONEXISTENT_RESOURCE_BLOCKED']

    def test_foreign_profile_update_is_blocked(self, secure_api):
        response = secure_api.put(
            f"/api/users/{BOB_ID}",
            as_user=ALICE_ID,
            json={'name': 'Mallory', 'email': 'mallory@example.com'}
        )

        assert response.status_code == 404
        assert secure_api.services.store.get_user(BOB_ID)['name'] == 'Bob Smith'

    def test_payment_is_masked(self, secure_api):
        response = secure_api.get('/api/payments/1', as_user=ALICE_ID)

        assert response.status_code == 200
        payment = response.get_json()['payment']
        assert payment['bankAccount'] == '****1234'
        assert 'routingNumber' not in payment

    def test_foreign_payment_is_hidden(self, secure_api):
        response = secure_api.get('/api/payments/2', as_user=ALICE_ID)

        assert response.status_code == 404
        assert response.get_json() == NOT_FOUND_BODY

    def test_payment_for_foreign_order_is_rejected(self, secure_api):
        response = secure_api.post(
            '/api/payments',
            as_user=ALICE_ID,
            json={'orderId': 3, 'amount': 10.0, 'bankAccount': '99998888'}
        )

        assert response.status_code == 404
        assert secure_api.services.store.count_payments() == 3
        assert [record['event'] for record in secure_api.security_events()] == ['UNAUTHORIZED_ACCESS_BLOCKED']

    def test_payment_for_own_order(self, secure_api):
        response = secure_api.post(
            '/api/payments',
            as_user=ALICE_ID,
            json={'orderId': 2, 'amount': 99.99, 'bankAccount': '99998888'}
        )

        assert response.status_code == 201
        payment_id = response.get_json()['paymentId']
        assert secure_api.services.store.lookup_owner('payment', payment_id) == ALICE_ID
        assert secure_api.events_named('PAYMENT_CREATED')


@pytest.mark.integration
@pytest.mark.security
class TestVulnerableVariant:

    def test_cross_owner_read_is_served_and_recorded(self, vulnerable_api):
        response = vulnerable_api.get('/api/orders/3', as_user=ALICE_ID)

        assert response.status_code == 200
        body = response.get_json()
        assert body['order']['userId'] == BOB_ID
        assert body['security_note'].startswith('VULNERABLE')

        events = vulnerable_api.security_events()
        assert len(events) == 1
        assert events[0]['event'] == 'BOLA_ATTEMPT'
        assert events[0]['severity'] == 'HIGH'
        assert events[0]['blocked'] is False
        assert events[0]['ownerId'] == BOB_ID
        assert events[0]['source'] == 'vulnerable'

    def test_cross_owner_update_and_delete(self, vulnerable_api):
        updated = vulnerable_api.put('/api/orders/3', as_user=ALICE_ID, json={'status': 'cancelled'})
        deleted = vulnerable_api.delete('/api/orders/4', as_user=ALICE_ID)

        assert updated.status_code == deleted.status_code == 200
        assert vulnerable_api.services.store.get_order(3)['status'] == 'cancelled'
        assert vulnerable_api.services.store.get_order(4) is None
        assert [record['event'] for record in vulnerable_api.security_events()] == ['BOLA_UPDATE', 'BOLA_DELETE']

    def test_owner_access_is_not_a_bola_event(self, vulnerable_api):
        response = vulnerable_api.get('/api/orders/1', as_user=ALICE_ID)

        assert response.status_code == 200
        assert vulnerable_api.security_events() == []

    def test_missing_object_is_still_not_found(self, vulnerable_api):
        response = vulnerable_api.get('/api/orders/999', as_user=ALICE_ID)

        assert response.status_code == 404
        assert response.get_json() == NOT_FOUND_BODY
        assert [record['event'] for record in vulnerable_api.security_events()] == ['NONEXISTENT_RESOURCE_BLOCKED']

    def test_payment_data_is_exposed(self, vulnerable_api):
        response = vulnerable_api.get('/api/payments/2', as_user=ALICE_ID)

        assert response.status_code == 200
        payment = response.get_json()['payment']
        assert payment['bankAccount'] == '****5678'
        assert payment['routingNumber'] == '021000022'
        assert payment['userId'] == BOB_ID
        assert vulnerable_api.events_named('BOLA_ATTEMPT')

    def test_foreign_profile_is_readable(self, vulnerable_api):
        response = vulnerable_api.get(f"/api/users/{CHARLIE_ID}", as_user=ALICE_ID)

        assert response.status_code == 200
        assert response.get_json()['user']['email'] == 'charlie@example.com'
        assert vulnerable_api.events_named('BOLA_ATTEMPT')[0]['resourceType'] == 'user'

    def test_payment_for_foreign_order_is_accepted(self, vulnerable_api):
        response = vulnerable_api.post(
            '/api/payments',
            as_user=ALICE_ID,
            json={'orderId': 3, 'amount': 10.0, 'bankAccount': '99998888'}
        )

        assert response.status_code == 201
        assert vulnerable_api.events_named('BOLA_ATTEMPT')


@pytest.mark.integration
class TestRequestHandling:

    @pytest.mark.parametrize('raw_id', ['abc', '-1', '0', '1.5', '01x'])
    def test_malformed_id_is_rejected_without_event(self, any_api, raw_id):
        response = any_api.get(f"/api/orders/{raw_id}", as_user=ALICE_ID)

        assert response.status_code == 400
        assert response.get_json()['success'] is False
        assert response.get_json()['error_code'] == 'INPUT_1001'
        assert any_api.security_events() == []

    def test_missing_token(self, any_api):
        response = any_api.get('/api/orders/3')

        assert response.status_code == 401
        assert response.get_json()['error_code'] == 'AUTH_2001'
        events = any_api.security_events()
        assert [record['event'] for record in events] == ['UNAUTHENTICATED_ACCESS']
        assert events[0]['blocked'] is True

    def test_invalid_token(self, any_api):
        response = any_api.get('/api/orders/1', headers={'Authorization': 'Bearer not-a-token'})

        assert response.status_code == 401
        assert any_api.events_named('UNAUTHENTICATED_ACCESS')

    def test_list_only_returns_own_orders(self, any_api):
        response = any_api.get('/api/orders', as_user=BOB_ID)

        assert response.status_code == 200
        assert [order['id'] for order in response.get_json()['orders']] == [3, 4]

    def test_create_order(self, any_api):
        response = any_api.post('/api/orders', as_user=CHARLIE_ID, json={'product': 'Desk', 'amount': 250})

        assert response.status_code == 201
        order_id = response.get_json()['orderId']
        assert any_api.services.store.lookup_owner('order', order_id) == CHARLIE_ID

    def test_invalid_body(self, any_api):
        response = any_api.post('/api/orders', as_user=ALICE_ID, json={'product': 'Desk'})

        assert response.status_code == 400
        assert 'amount' in response.get_json()['errors']

    def test_unknown_endpoint(self, any_api):
        response = any_api.get('/api/invoices')

        assert response.status_code == 404
        assert response.get_json()['error'] == 'Endpoint not found'

    def test_access_log_records_every_request(self, any_api):
        any_api.get('/api/orders', as_user=ALICE_ID)

        records = [record for record in any_api.access_records() if record.get('url') == '/api/orders']
        assert len(records) == 1
        assert records[0]['statusCode'] == 200
        assert records[0]['userId'] == ALICE_ID
        assert records[0]['source'] == any_api.services.variant


@pytest.mark.integration
class TestStorageFailure:

    @pytest.mark.parametrize('method, path', [
        ('GET', '/api/orders/3'),
        ('PUT', '/api/orders/1'),
        ('DELETE', '/api/orders/3'),
        ('GET', '/api/payments/1'),
    ])
    def test_lookup_failure_is_a_server_error(self, any_api, mocker, method, path):
        mocker.patch.object(
            any_api.services.store, 'lookup_owner',
            side_effect=InfrastructureError("storage down")
        )

        response = any_api.request(method, path, as_user=ALICE_ID, json={'status': 'shipped'})

        assert response.status_code == 500
        assert response.get_json() != NOT_FOUND_BODY
        assert response.get_json()['error_code'] == 'INFRA_3002'
        assert any_api.security_events() == []
