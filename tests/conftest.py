"""
Global pytest Configuration and Fixtures

Application fixtures build one isolated Flask application per API variant,
each writing its security and access logs under the test's temporary
directory. ``LabApi`` wraps an application with its test client, token
issuing for the seeded demo users and readers for both logs:

    1 alice (user)   2 bob (user)   3 charlie (user)   4 admin (admin)

Seeded orders 1-2 belong to alice, 3-4 to bob, 5-6 to charlie; payments 1, 2
and 3 belong to alice, bob and charlie.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from flask import Flask

from bola_lab.app import cleanup_application, create_app, get_socketio
from bola_lab.services import EXTENSION_NAME, LabServices

ALICE_ID = 1
BOB_ID = 2
CHARLIE_ID = 3
ADMIN_ID = 4


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "unit: Unit tests with isolated component testing"
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration tests through the Flask and Socket.IO test clients"
    )
    config.addinivalue_line(
        "markers",
        "security: Authorization and event pipeline behavior tests"
    )


def read_log(path: Path) -> List[Dict[str, Any]]:
    """All JSON records of a line log (empty when the file does not exist)."""
    if not path.exists():
        return []
    with path.open('r', encoding='utf-8') as handle:
        return [json.loads(line) for line in handle if line.strip()]


class LabApi:
    """Test client for one application, authenticating as a seeded user."""

    def __init__(self, app: Flask):
        self.app = app
        self.client = app.test_client()

    @property
    def services(self) -> LabServices:
        return self.app.extensions[EXTENSION_NAME]

    def token_for(self, user_id: int) -> str:
        user = self.services.store.get_user(user_id)
        return self.services.identity_resolver.issue_token(user)

    def headers(self, user_id: Optional[int]) -> Dict[str, str]:
        if user_id is None:
            return {}
        return {'Authorization': f"Bearer {self.token_for(user_id)}"}

    def request(self, method: str, path: str, as_user: Optional[int] = None, **kwargs):
        headers = dict(kwargs.pop('headers', {}) or {})
        headers.update(self.headers(as_user))
        return self.client.open(path, method=method, headers=headers, **kwargs)

    def get(self, path: str, as_user: Optional[int] = None, **kwargs):
        return self.request('GET', path, as_user, **kwargs)

    def post(self, path: str, as_user: Optional[int] = None, **kwargs):
        return self.request('POST', path, as_user, **kwargs)

    def put(self, path: str, as_user: Optional[int] = None, **kwargs):
        return self.request('PUT', path, as_user, **kwargs)

    def delete(self, path: str, as_user: Optional[int] = None, **kwargs):
        return self.request('DELETE', path, as_user, **kwargs)

    def security_events(self) -> List[Dict[str, Any]]:
        return read_log(self.services.emitter.security_log_path)

    def access_records(self) -> List[Dict[str, Any]]:
        return read_log(self.services.emitter.access_log_path)

    def events_named(self, event_key: str) -> List[Dict[str, Any]]:
        return [record for record in self.security_events() if record.get('event') == event_key]

    def socketio_client(self, user_id: Optional[int] = None, **auth: Any):
        if user_id is not None:
            auth.setdefault('token', self.token_for(user_id))
        return get_socketio(self.app).test_client(
            self.app,
            namespace='/events',
            auth=auth or None
        )


@pytest.fixture
def make_app(tmp_path) -> Callable[..., Flask]:
    """Factory building testing applications; every app is cleaned up after the test."""
    created: List[Flask] = []

    def _make_app(variant: str = 'secure', **overrides) -> Flask:
        overrides.setdefault('LOG_DIR', str(tmp_path / f"{variant}-{len(created)}"))
        app = create_app('testing', API_VARIANT=variant, **overrides)
        created.append(app)
        return app

    yield _make_app

    for app in created:
        cleanup_application(app)


@pytest.fixture
def make_api(make_app) -> Callable[..., LabApi]:
    def _make_api(variant: str = 'secure', **overrides) -> LabApi:
        return LabApi(make_app(variant, **overrides))

    return _make_api


@pytest.fixture
def secure_app(make_app) -> Flask:
    return make_app('secure')


@pytest.fixture
def vulnerable_app(make_app) -> Flask:
    return make_app('vulnerable')


@pytest.fixture
def secure_api(secure_app) -> LabApi:
    return LabApi(secure_app)


@pytest.fixture
def vulnerable_api(vulnerable_app) -> LabApi:
    return LabApi(vulnerable_app)


@pytest.fixture(params=['secure', 'vulnerable'])
def any_api(request, make_api) -> LabApi:
    """Runs a test once per API variant."""
    return make_api(request.param)
