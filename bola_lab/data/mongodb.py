"""
MongoDB Resource Store

pymongo implementation of the ResourceStore contract. Documents keep integer
``id`` fields (allocated from a ``counters`` collection with an atomic
``$inc``) so resource identifiers look the same on every backend.

Transient connection failures are retried with tenacity using exponential
backoff with jitter; anything still failing afterwards is translated to
InfrastructureError so the route layer answers 5xx instead of treating the
resource as absent.
"""

import logging
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

import structlog
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    DuplicateKeyError,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
)
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from bola_lab.auth.exceptions import ErrorCode, InfrastructureError
from bola_lab.data.store import DuplicateEmailError, Record, ResourceStore

logger = structlog.get_logger(__name__)

TRANSIENT_ERRORS = (AutoReconnect, ConnectionFailure, NetworkTimeout, ServerSelectionTimeoutError)

_COLLECTIONS = {'user': 'users', 'order': 'orders', 'payment': 'payments'}


def with_storage_retry(max_attempts: int = 3) -> Callable:
    """
    Retry transient pymongo failures, then translate them to InfrastructureError.

    Args:
        max_attempts: Total attempts including the first call
    """
    retry_decorator = retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=0.05, max=0.5),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
        reraise=True
    )

    def decorator(func: Callable) -> Callable:
        retried = retry_decorator(func)

        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return retried(*args, **kwargs)
            except DuplicateKeyError:
                raise
            except TRANSIENT_ERRORS as e:
                logger.error(
                    "MongoDB unavailable",
                    operation=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__
                )
                raise InfrastructureError(
                    f"MongoDB unavailable during {func.__name__}: {e}",
                    error_code=ErrorCode.INFRA_STORAGE_UNAVAILABLE
                ) from e
            except PyMongoError as e:
                logger.error(
                    "MongoDB operation failed",
                    operation=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__
                )
                raise InfrastructureError(
                    f"MongoDB operation {func.__name__} failed: {e}",
                    error_code=ErrorCode.INFRA_STORAGE_FAILURE
                ) from e

        return wrapper
    return decorator


def _strip(document: Optional[Dict[str, Any]]) -> Optional[Record]:
    if document is None:
        return None
    document = dict(document)
    document.pop('_id', None)
    return document


class MongoResourceStore(ResourceStore):
    """
    ResourceStore backed by MongoDB collections ``users``, ``orders``,
    ``payments`` and ``counters``.

    Args:
        database: pymongo Database handle
        client: Owning client, closed by ``close()`` when provided
    """

    def __init__(self, database: Database, client: Optional[MongoClient] = None):
        self.database = database
        self.client = client

    @classmethod
    def from_uri(cls, uri: str, database_name: str, timeout_ms: int = 2000) -> 'MongoResourceStore':
        client = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        store = cls(client[database_name], client=client)
        logger.info("MongoDB resource store created", database=database_name)
        return store

    @with_storage_retry()
    def ensure_indexes(self) -> None:
        self.database.users.create_index([('email', ASCENDING)], unique=True)
        for collection in _COLLECTIONS.values():
            self.database[collection].create_index([('id', ASCENDING)], unique=True)
        self.database.orders.create_index([('user_id', ASCENDING)])
        self.database.payments.create_index([('user_id', ASCENDING)])

    def _next_id(self, collection: str) -> int:
        counter = self.database.counters.find_one_and_update(
            {'_id': collection},
            {'$inc': {'seq': 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return counter['seq']

    def _insert(self, collection: str, document: Record) -> Record:
        document = dict(
            document,
            id=self._next_id(collection),
            created_at=datetime.now(timezone.utc).isoformat()
        )
        self.database[collection].insert_one(dict(document))
        return document

    @with_storage_retry()
    def lookup_owner(self, resource_type: str, resource_id: int) -> Optional[int]:
        collection = _COLLECTIONS[resource_type]
        field = 'id' if resource_type == 'user' else 'user_id'
        document = self.database[collection].find_one(
            {'id': resource_id}, projection={field: 1, '_id': 0}
        )
        return document[field] if document else None

    # Users
    @with_storage_retry()
    def get_user(self, user_id: int) -> Optional[Record]:
        return _strip(self.database.users.find_one({'id': user_id}))

    @with_storage_retry()
    def get_user_by_email(self, email: str) -> Optional[Record]:
        return _strip(self.database.users.find_one({'email': email}))

    @with_storage_retry()
    def create_user(self, email: str, password_hash: str, name: str, role: str = 'user') -> Record:
        try:
            return self._insert('users', {
                'email': email,
                'password': password_hash,
                'name': name,
                'role': role,
            })
        except DuplicateKeyError as e:
            raise DuplicateEmailError(f"User with email {email} already exists") from e

    @with_storage_retry()
    def update_user(self, user_id: int, name: str, email: str) -> bool:
        try:
            result = self.database.users.update_one(
                {'id': user_id}, {'$set': {'name': name, 'email': email}}
            )
        except DuplicateKeyError as e:
            raise DuplicateEmailError(f"User with email {email} already exists") from e
        return result.matched_count > 0

    @with_storage_retry()
    def delete_user(self, user_id: int) -> bool:
        return self.database.users.delete_one({'id': user_id}).deleted_count > 0

    @with_storage_retry()
    def list_users(self, page: int, limit: int) -> List[Record]:
        cursor = self.database.users.find({}).sort('id', ASCENDING).skip((page - 1) * limit).limit(limit)
        return [_strip(document) for document in cursor]

    @with_storage_retry()
    def count_users(self) -> int:
        return self.database.users.count_documents({})

    # Orders
    @with_storage_retry()
    def get_order(self, order_id: int) -> Optional[Record]:
        return _strip(self.database.orders.find_one({'id': order_id}))

    @with_storage_retry()
    def list_orders(self, user_id: int) -> List[Record]:
        cursor = self.database.orders.find({'user_id': user_id}).sort('id', ASCENDING)
        return [_strip(document) for document in cursor]

    @with_storage_retry()
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

    @with_storage_retry()
    def update_order_status(self, order_id: int, status: str) -> bool:
        result = self.database.orders.update_one({'id': order_id}, {'$set': {'status': status}})
        return result.matched_count > 0

    @with_storage_retry()
    def delete_order(self, order_id: int) -> bool:
        return self.database.orders.delete_one({'id': order_id}).deleted_count > 0

    # Payments
    @with_storage_retry()
    def get_payment(self, payment_id: int) -> Optional[Record]:
        return _strip(self.database.payments.find_one({'id': payment_id}))

    @with_storage_retry()
    def list_payments(self, user_id: int) -> List[Record]:
        cursor = self.database.payments.find({'user_id': user_id}).sort('id', ASCENDING)
        return [_strip(document) for document in cursor]

    @with_storage_retry()
    def create_payment(self, user_id: int, order_id: int, amount: float, **details: Any) -> Record:
        return self._insert('payments', {
            'user_id': user_id,
            'order_id': order_id,
            'amount': amount,
            'bank_account': details.get('bank_account') or '',
            'routing_number': details.get('routing_number'),
            'status': details.get('status') or 'pending',
        })

    @with_storage_retry()
    def list_all_payments(self, page: int, limit: int) -> List[Record]:
        pipeline = [
            {'$sort': {'id': ASCENDING}},
            {'$skip': (page - 1) * limit},
            {'$limit': limit},
            {'$lookup': {
                'from': 'users',
                'localField': 'user_id',
                'foreignField': 'id',
                'as': 'owner',
            }},
        ]
        payments = []
        for document in self.database.payments.aggregate(pipeline):
            owners = document.pop('owner', [])
            document['user_email'] = owners[0]['email'] if owners else None
            payments.append(_strip(document))
        return payments

    @with_storage_retry()
    def count_payments(self) -> int:
        return self.database.payments.count_documents({})

    def ping(self) -> bool:
        try:
            self.database.command('ping')
            return True
        except PyMongoError as e:
            logger.warning("MongoDB ping failed", error=str(e))
            return False

    def close(self) -> None:
        if self.client is not None:
            self.client.close()


__all__ = ['MongoResourceStore', 'with_storage_retry']
