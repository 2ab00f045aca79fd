"""Demo data loaded into an empty store."""

from typing import Callable

import structlog

from bola_lab.data.store import ResourceStore

logger = structlog.get_logger(__name__)

DEMO_USERS = [
    {'email': 'alice@example.com', 'name': 'Alice Johnson', 'password': 'password123'},
    {'email': 'bob@example.com', 'name': 'Bob Smith', 'password': 'password123'},
    {'email': 'charlie@example.com', 'name': 'Charlie Brown', 'password': 'password123'},
    {'email': 'admin@example.com', 'name': 'Admin User', 'password': 'admin123', 'role': 'admin'},
]

DEMO_ORDERS = [
    {'user_id': 1, 'product': 'Laptop Dell XPS 15', 'amount': 1899.99,
     'credit_card': '**** **** **** 1234', 'address': '123 Main St, Ciudad', 'phone': '+51 999 888 777'},
    {'user_id': 1, 'product': 'Mouse Logitech MX Master', 'amount': 99.99,
     'credit_card': '**** **** **** 1234', 'address': '123 Main St, Ciudad', 'phone': '+51 999 888 777'},
    {'user_id': 2, 'product': 'iPhone 15 Pro', 'amount': 1299.99,
     'credit_card': '**** **** **** 5678', 'address': '456 Oak Ave, Lima', 'phone': '+51 987 654 321'},
    {'user_id': 2, 'product': 'AirPods Pro', 'amount': 249.99,
     'credit_card': '**** **** **** 5678', 'address': '456 Oak Ave, Lima', 'phone': '+51 987 654 321'},
    {'user_id': 3, 'product': 'Samsung Galaxy S24', 'amount': 999.99,
     'credit_card': '**** **** **** 9012', 'address': '789 Pine Rd, Cusco', 'phone': '+51 912 345 678'},
    {'user_id': 3, 'product': 'PlayStation 5', 'amount': 499.99, 'status': 'shipped',
     'credit_card': '**** **** **** 9012', 'address': '789 Pine Rd, Cusco', 'phone': '+51 912 345 678'},
]

DEMO_PAYMENTS = [
    {'user_id': 1, 'order_id': 1, 'amount': 1899.99, 'bank_account': '****1234',
     'routing_number': '021000021', 'status': 'completed'},
    {'user_id': 2, 'order_id': 3, 'amount': 1299.99, 'bank_account': '****5678',
     'routing_number': '021000022', 'status': 'pending'},
    {'user_id': 3, 'order_id': 5, 'amount': 999.99, 'bank_account': '****9012',
     'routing_number': '021000023', 'status': 'completed'},
]


def seed_store(store: ResourceStore, hash_password: Callable[[str], str]) -> bool:
    """
    Populate an empty store with the demo users, orders and payments.

    Returns:
        True when data was inserted, False when the store already had users
    """
    if store.count_users() > 0:
        return False

    for user in DEMO_USERS:
        store.create_user(
            email=user['email'],
            password_hash=hash_password(user['password']),
            name=user['name'],
            role=user.get('role', 'user')
        )

    for order in DEMO_ORDERS:
        details = {key: value for key, value in order.items()
                   if key not in ('user_id', 'product', 'amount')}
        store.create_order(order['user_id'], order['product'], order['amount'], **details)

    for payment in DEMO_PAYMENTS:
        details = {key: value for key, value in payment.items()
                   if key not in ('user_id', 'order_id', 'amount')}
        store.create_payment(payment['user_id'], payment['order_id'], payment['amount'], **details)

    logger.info(
        "Demo data seeded",
        users=len(DEMO_USERS),
        orders=len(DEMO_ORDERS),
        payments=len(DEMO_PAYMENTS)
    )
    return True


__all__ = ['DEMO_USERS', 'DEMO_ORDERS', 'DEMO_PAYMENTS', 'seed_store']
