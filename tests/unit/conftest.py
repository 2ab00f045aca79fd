"""
Unit test fixtures: a small in-memory resource store and the subjects used
across the authorization and event tests.
"""

import pytest

from bola_lab.auth.authorization import AuthorizationEngine, EnforcingPolicy, NonEnforcingPolicy
from bola_lab.auth.identity import Role, Subject
from bola_lab.data.store import InMemoryResourceStore


@pytest.fixture
def store():
    """Users 1 (alice), 2 (bob), 3 (admin); order 1 -> alice, order 2 -> bob; payment 1 -> bob."""
    store = InMemoryResourceStore()
    store.create_user('alice@example.com', 'hash', 'Alice')
    store.create_user('bob@example.com', 'hash', 'Bob')
    store.create_user('admin@example.com', 'hash', 'Admin', role='admin')
    store.create_order(1, 'Laptop', 1899.99)
    store.create_order(2, 'Phone', 1299.99)
    store.create_payment(2, 2, 1299.99, bank_account='12345678')
    return store


@pytest.fixture
def alice():
    return Subject(id=1, role=Role.USER, email='alice@example.com')


@pytest.fixture
def bob():
    return Subject(id=2, role=Role.USER, email='bob@example.com')


@pytest.fixture
def admin():
    return Subject(id=3, role=Role.ADMIN, email='admin@example.com')


@pytest.fixture
def enforcing_engine(store):
    return AuthorizationEngine(store, EnforcingPolicy())


@pytest.fixture
def non_enforcing_engine(store):
    return AuthorizationEngine(store, NonEnforcingPolicy())
