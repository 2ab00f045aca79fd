"""
Resource Store

Storage contract consumed by the authorization engine and the route layer.
The engine only needs ``lookup_owner``; the routes use the CRUD operations.
Records are plain dictionaries with snake_case keys, mirroring the documents
kept by the MongoDB backend.

Implementations:
- InMemoryResourceStore: lock-protected dictionaries, the default backend
- MongoResourceStore (bola_lab.data.mongodb): pymongo collections

Backend failures surface as InfrastructureError, never as an absent record.
"""

import copy
import itertools
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bola_lab.auth.exceptions import ErrorCode, InputError

Record = Dict[str, Any]

ORDER_STATUSES = ('pending', 'shipped', 'delivered', 'cancelled')


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DuplicateEmailError(InputError):
    """Raised when a user record would reuse an existing email."""

    default_code = ErrorCode.INPUT_CONFLICT
    default_user_message = "Email already in use"


class ResourceStore(ABC):
    """Storage contract for users, orders and payments."""

    # Resource Owner Lookup
    @abstractmethod
    def lookup_owner(self, resource_type: str, resource_id: int) -> Optional[int]:
        """Return the owner id of a resource, or None when it does not exist."""

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[Record]:
        ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[Record]:
        ...

    @abstractmethod
    def create_user(self, email: str, password_hash: str, name: str, role: str = 'user') -> Record:
        ...

    @abstractmethod
    def update_user(self, user_id: int, name: str, email: str) -> bool:
        ...

    @abstractmethod
    def delete_user(self, user_id: int) -> bool:
        ...

    @abstractmethod
    def list_users(self, page: int, limit: int) -> List[Record]:
        ...

    @abstractmethod
    def count_users(self) -> int:
        ...

    # Orders
    @abstractmethod
    def get_order(self, order_id: int) -> Optional[Record]:
        ...

    @abstractmethod
    def list_orders(self, user_id: int) -> List[Record]:
        ...

    @abstractmethod
    def create_order(self, user_id: int, product: str, amount: float, **details: Any) -> Record:
        ...

    @abstractmethod
    def update_order_status(self, order_id: int, status: str) -> bool:
        ...

    @abstractmethod
    def delete_order(self, order_id: int) -> bool:
        ...

    # Payments
    @abstractmethod
    def get_payment(self, payment_id: int) -> Optional[Record]:
        ...

    @abstractmethod
    def list_payments(self, user_id: int) -> List[Record]:
        ...

    @abstractmethod
    def create_payment(self, user_id: int, order_id: int, amount: float, **details: Any) -> Record:
        ...

    @abstractmethod
    def list_all_payments(self, page: int, limit: int) -> List[Record]:
        """Paginated payments joined with the owner's email as ``user_email``."""

    @abstractmethod
    def count_payments(self) -> int:
        ...

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the backend is reachable."""

    def close(self) -> None:
        """Release backend resources."""


class InMemoryResourceStore(ResourceStore):
    """
    Dictionary-backed store.

    A single lock guards all tables; it is held only for the duration of a
    dictionary operation, never across caller code.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tables: Dict[str, Dict[int, Record]] = {
            'users': {},
            'orders': {},
            'payments': {},
        }
        self._sequences = {
            'users': itertools.count(1),
            'orders': itertools.count(1),
            'payments': itertools.count(1),
        }

    def _insert(self, table: str, record: Record) -> Record:
        with self._lock:
            return self._insert_unlocked(table, record)

    def _insert_unlocked(self, table: str, record: Record) -> Record:
        # caller holds self._lock
        record_id = next(self._sequences[table])
        stored = dict(record, id=record_id, created_at=_now())
        self._tables[table][record_id] = stored
        return copy.deepcopy(stored)

    def _get(self, table: str, record_id: int) -> Optional[Record]:
        with self._lock:
            record = self._tables[table].get(record_id)
            return copy.deepcopy(record) if record else None

    def _select(self, table: str, **criteria: Any) -> List[Record]:
        with self._lock:
            rows = [
                copy.deepcopy(row)
                for row in self._tables[table].values()
                if all(row.get(key) == value for key, value in criteria.items())
            ]
        return sorted(rows, key=lambda row: row['id'])

    def lookup_owner(self, resource_type: str, resource_id: int) -> Optional[int]:
        if resource_type == 'user':
            user = self._get('users', resource_id)
            return user['id'] if user else None

        table = {'order': 'orders', 'payment': 'payments'}.get(resource_type)
        if table is None:
            raise InputError(
                f"Unsupported resource type: {resource_type}",
                error_code=ErrorCode.INPUT_UNSUPPORTED_RESOURCE
            )
        record = self._get(table, resource_id)
        return record['user_id'] if record else None

    # Users
    def get_user(self, user_id: int) -> Optional[Record]:
        return self._get('users', user_id)

    def get_user_by_email(self, email: str) -> Optional[Record]:
        matches = self._select('users', email=email)
        return matches[0] if matches else None

    def create_user(self, email: str, password_hash: str, name: str, role: str = 'user') -> Record:
        with self._lock:
            if any(user['email'] == email for user in self._tables['users'].values()):
                raise DuplicateEmailError(f"User with email {email} already exists")
            return self._insert_unlocked('users', {
                'email': email,
                'password': password_hash,
                'name': name,
                'role': role,
            })

    def update_user(self, user_id: int, name: str, email: str) -> bool:
        with self._lock:
            user = self._tables['users'].get(user_id)
            if user is None:
                return False
            if any(
                other['email'] == email and other_id != user_id
                for other_id, other in self._tables['users'].items()
            ):
                raise DuplicateEmailError(f"User with email {email} already exists")
            user.update(name=name, email=email)
            return True

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            return self._tables['users'].pop(user_id, None) is not None

    def list_users(self, page: int, limit: int) -> List[Record]:
        offset = (page - 1) * limit
        return self._select('users')[offset:offset + limit]

    def count_users(self) -> int:
        with self._lock:
            return len(self._tables['users'])

    # Orders
    def get_order(self, order_id: int) -> Optional[Record]:
        return self._get('orders', order_id)

    def list_orders(self, user_id: int) -> List[Record]:
        return self._select('orders', user_id=user_id)

    def create_order(self, user_id: int, product: str, amount: float, **details: Any) -> Record:
        return self._insert('orders', {
            'user_id': user_id,
            'product': product,
            'amount': amount,
            'status': details.get('status') or 'pending',
            'credit_card': details.get('credit_card'),
            'address': details.get('address'),
            'phone': details.get('phone'),
        })

    def update_order_status(self, order_id: int, status: str) -> bool:
        with self._lock:
            order = self._tables['orders'].get(order_id)
            if order is None:
                return False
            order['status'] = status
            return True

    def delete_order(self, order_id: int) -> bool:
        with self._lock:
            return self._tables['orders'].pop(order_id, None) is not None

    # Payments
    def get_payment(self, payment_id: int) -> Optional[Record]:
        return self._get('payments', payment_id)

    def list_payments(self, user_id: int) -> List[Record]:
        return self._select('payments', user_id=user_id)

    def create_payment(self, user_id: int, order_id: int, amount: float, **details: Any) -> Record:
        return self._insert('payments', {
            'user_id': user_id,
            'order_id': order_id,
            'amount': amount,
            'bank_account': details.get('bank_account') or '',
            'routing_number': details.get('routing_number'),
            'status': details.get('status') or 'pending',
        })

    def list_all_payments(self, page: int, limit: int) -> List[Record]:
        offset = (page - 1) * limit
        payments = self._select('payments')[offset:offset + limit]
        for payment in payments:
            owner = self.get_user(payment['user_id'])
            payment['user_email'] = owner['email'] if owner else None
        return payments

    def count_payments(self) -> int:
        with self._lock:
            return len(self._tables['payments'])

    def ping(self) -> bool:
        return True


__all__ = [
    'Record',
    'ORDER_STATUSES',
    'DuplicateEmailError',
    'ResourceStore',
    'InMemoryResourceStore',
]
