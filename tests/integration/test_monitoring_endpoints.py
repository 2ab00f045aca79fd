"""
Admin monitoring endpoints, health check and Prometheus metrics.
"""

import pytest

from bola_lab.auth.authorization import NOT_FOUND_MESSAGE

ALICE_ID = 1
BOB_ID = 2
ADMIN_ID = 4


@pytest.mark.integration
class TestSecurityStats:

    def test_secure_stats(self, secure_api):
        secure_api.get('/api/orders/3', as_user=ALICE_ID)
        secure_api.get('/api/orders/999', as_user=ALICE_ID)
        secure_api.get('/api/orders/5', as_user=ADMIN_ID)

        response = secure_api.get('/api/security/stats', as_user=ADMIN_ID)

        assert response.status_code == 200
        body = response.get_json()
        assert body['variant'] == 'secure'
        assert body['ownershipEnforced'] is True
        assert body['blockedAttempts'] == 2
        assert body['totalSecurityLogs'] == 4
        assert body['aggregates']['bySource']['secure'] == {'total': 4, 'blocked': 2, 'critical': 2}
        assert body['recentBySource'] == body['aggregates']['bySource']
        assert body['insights']['total'] == 4
        assert body['protectedEndpoints']

    def test_vulnerable_stats(self, vulnerable_api):
        vulnerable_api.get('/api/orders/3', as_user=ALICE_ID)
        vulnerable_api.delete('/api/orders/4', as_user=ALICE_ID)

        body = vulnerable_api.get('/api/security/stats', as_user=ADMIN_ID).get_json()

        assert body['ownershipEnforced'] is False
        assert body['protectedEndpoints'] == []
        assert body['blockedAttempts'] == 0
        assert body['aggregates']['bySource']['vulnerable']['critical'] == 2
        assert body['insights']['specialCounts']['bolaAlerts'] == 2

    def test_non_admin_is_hidden_and_recorded(self, any_api):
        response = any_api.get('/api/security/stats', as_user=BOB_ID)

        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': NOT_FOUND_MESSAGE}
        events = any_api.events_named('ADMIN_ACCESS_DENIED')
        assert len(events) == 1
        assert events[0]['subjectId'] == BOB_ID
        assert events[0]['severity'] == 'MEDIUM'

    def test_requires_authentication(self, any_api):
        assert any_api.get('/api/security/stats').status_code == 401


@pytest.mark.integration
class TestLogEndpoints:

    def test_recent_logs_are_enriched(self, secure_api):
        secure_api.get('/api/orders/3', as_user=ALICE_ID)

        body = secure_api.get('/api/logs', as_user=ADMIN_ID).get_json()

        assert body['success'] is True
        events = [record['event'] for record in body['logs']]
        assert 'UNAUTHORIZED_ACCESS_BLOCKED' in events
        blocked = next(record for record in body['logs'] if record['event'] == 'UNAUTHORIZED_ACCESS_BLOCKED')
        assert blocked['requestType'] == 'orders'
        assert blocked['eventMeta']['key'] == 'UNAUTHORIZED_ACCESS_BLOCKED'

    def test_bola_logs(self, vulnerable_api):
        vulnerable_api.get('/api/orders/3', as_user=ALICE_ID)
        vulnerable_api.put('/api/orders/5', as_user=BOB_ID, json={'status': 'cancelled'})
        vulnerable_api.get('/api/orders/1', as_user=ALICE_ID)

        body = vulnerable_api.get('/api/logs/bola', as_user=ADMIN_ID).get_json()

        assert body['total_bola_attempts'] == 2
        assert [record['event'] for record in body['logs']] == ['BOLA_ATTEMPT', 'BOLA_UPDATE']
        assert all(record['requestType'] == 'bola' for record in body['logs'])

    def test_secure_variant_has_no_bola_logs(self, secure_api):
        secure_api.get('/api/orders/3', as_user=ALICE_ID)

        body = secure_api.get('/api/logs/bola', as_user=ADMIN_ID).get_json()

        assert body['total_bola_attempts'] == 0
        assert body['logs'] == []


@pytest.mark.integration
class TestAdminResourceEndpoints:

    def test_admin_lists_users(self, any_api):
        response = any_api.get('/api/users?page=1&limit=3', as_user=ADMIN_ID)

        assert response.status_code == 200
        body = response.get_json()
        assert body['total'] == 4
        assert body['totalPages'] == 2
        assert [user['id'] for user in body['users']] == [1, 2, 3]

    def test_user_cannot_list_users(self, any_api):
        assert any_api.get('/api/users', as_user=ALICE_ID).status_code == 404

    def test_admin_lists_all_payments_masked(self, any_api):
        body = any_api.get('/api/payments/admin/all', as_user=ADMIN_ID).get_json()

        assert body['total'] == 3
        assert body['payments'][0]['userEmail'] == 'alice@example.com'
        assert all('routingNumber' not in payment for payment in body['payments'])
        assert any_api.events_named('ADMIN_PAYMENTS_ACCESS')

    def test_admin_deletes_user(self, secure_api):
        response = secure_api.delete(f"/api/users/{BOB_ID}", as_user=ADMIN_ID)

        assert response.status_code == 200
        assert secure_api.services.store.get_user(BOB_ID) is None
        assert secure_api.events_named('USER_DELETED_BY_ADMIN')[0]['resourceId'] == str(BOB_ID)

    def test_admin_cannot_delete_self(self, secure_api):
        response = secure_api.delete(f"/api/users/{ADMIN_ID}", as_user=ADMIN_ID)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'You cannot delete your own account'


@pytest.mark.integration
class TestHealthAndMetrics:

    def test_health(self, any_api):
        response = any_api.get('/health')

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == any_api.services.variant
        assert body['storage'] == 'ok'
        assert body['ownershipEnforced'] is (any_api.services.variant == 'secure')
        assert body['security_stats']['totalSecurityLogs'] == 0
        assert body['version']

    def test_health_degrades_when_storage_is_down(self, secure_api, mocker):
        mocker.patch.object(secure_api.services.store, 'ping', return_value=False)

        response = secure_api.get('/health')

        assert response.status_code == 503
        assert response.get_json()['status'] == 'degraded'

    def test_metrics(self, secure_api):
        secure_api.get('/api/orders/3', as_user=ALICE_ID)

        response = secure_api.get('/metrics')

        assert response.status_code == 200
        assert response.mimetype == 'text/plain'
        text = response.get_data(as_text=True)
        assert 'bola_authz_decisions_total' in text
        assert 'bola_security_events_total' in text

    def test_security_headers(self, secure_api):
        response = secure_api.get('/health')

        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert 'X-Correlation-ID' in response.headers
