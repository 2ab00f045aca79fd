"""
Live security event stream over Flask-SocketIO.

The testing configuration does not start the polling task, so tests drive
delivery with ``publisher.poll_once()``.
"""

import pytest

ALICE_ID = 1
BOB_ID = 2
ADMIN_ID = 4


def _messages(client):
    # the test client does not wrap 'message' payloads in an argument list
    return [packet['args'] for packet in client.get_received('/events') if packet['name'] == 'message']


@pytest.mark.integration
class TestEventStream:

    def test_admin_receives_initial_backlog(self, secure_api):
        secure_api.get('/api/orders/3', as_user=ALICE_ID)
        secure_api.get('/api/orders/999', as_user=ALICE_ID)

        client = secure_api.socketio_client(ADMIN_ID)

        assert client.is_connected('/events')
        messages = _messages(client)
        assert len(messages) == 1
        initial = messages[0]
        assert initial['type'] == 'initial'
        assert [record['event'] for record in initial['logs']] == [
            'UNAUTHORIZED_ACCESS_BLOCKED',
            'NONEXISTENT_RESOURCE_BLOCKED',
        ]
        assert initial['offset'] == secure_api.services.emitter.security_log_path.stat().st_size
        client.disconnect('/events')

    def test_new_events_are_pushed_in_order(self, vulnerable_api):
        client = vulnerable_api.socketio_client(ADMIN_ID)
        _messages(client)

        vulnerable_api.get('/api/orders/3', as_user=ALICE_ID)
        vulnerable_api.delete('/api/orders/5', as_user=BOB_ID)
        delivered = vulnerable_api.services.publisher.poll_once()

        messages = _messages(client)
        assert delivered == 2
        assert [message['type'] for message in messages] == ['new', 'new']
        assert [message['log']['event'] for message in messages] == ['BOLA_ATTEMPT', 'BOLA_DELETE']
        assert messages[0]['offset'] < messages[1]['offset']
        client.disconnect('/events')

    def test_resume_from_recorded_offset(self, secure_api):
        secure_api.get('/api/orders/3', as_user=ALICE_ID)
        first = secure_api.socketio_client(ADMIN_ID)
        offset = _messages(first)[0]['offset']
        first.disconnect('/events')

        secure_api.get('/api/orders/4', as_user=ALICE_ID)
        resumed = secure_api.socketio_client(ADMIN_ID, offset=offset)

        initial = _messages(resumed)[0]
        assert initial['type'] == 'initial'
        assert [record['resourceId'] for record in initial['logs'] if record['event'].startswith('UNAUTHORIZED')] == [
            '4'
        ]
        resumed.disconnect('/events')

    def test_owner_accesses_are_not_streamed(self, secure_api):
        client = secure_api.socketio_client(ADMIN_ID)
        _messages(client)

        secure_api.get('/api/orders/1', as_user=ALICE_ID)

        assert secure_api.services.publisher.poll_once() == 0
        assert _messages(client) == []
        client.disconnect('/events')

    def test_disconnect_removes_subscription(self, secure_api):
        client = secure_api.socketio_client(ADMIN_ID)
        assert len(secure_api.services.publisher.subscriptions) == 1

        client.disconnect('/events')

        assert secure_api.services.publisher.subscriptions == []


@pytest.mark.integration
@pytest.mark.security
class TestEventStreamAccess:

    def test_regular_user_is_refused(self, secure_api):
        client = secure_api.socketio_client(ALICE_ID)

        assert not client.is_connected('/events')
        assert secure_api.services.publisher.subscriptions == []

    def test_missing_token_is_refused(self, secure_api):
        client = secure_api.socketio_client()

        assert not client.is_connected('/events')

    def test_invalid_token_is_refused(self, secure_api):
        client = secure_api.socketio_client(token='not-a-token')

        assert not client.is_connected('/events')

    def test_open_stream_when_admin_not_required(self, make_api):
        api = make_api('secure', STREAM_REQUIRE_ADMIN=False)

        client = api.socketio_client(ALICE_ID)

        assert client.is_connected('/events')
        client.disconnect('/events')
