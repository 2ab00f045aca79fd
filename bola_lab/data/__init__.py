"""
Data access layer: the resource store contract and its backends.
"""

from typing import Any, Mapping

from bola_lab.data.seed import seed_store
from bola_lab.data.store import (
    ORDER_STATUSES,
    DuplicateEmailError,
    InMemoryResourceStore,
    ResourceStore,
)


def create_resource_store(settings: Mapping[str, Any]) -> ResourceStore:
    """Build the store selected by ``STORAGE_BACKEND``."""
    backend = settings.get('STORAGE_BACKEND', 'memory')
    if backend == 'mongodb':
        from bola_lab.data.mongodb import MongoResourceStore

        store = MongoResourceStore.from_uri(
            settings['MONGODB_URI'],
            settings['MONGODB_DATABASE'],
            timeout_ms=settings.get('MONGODB_TIMEOUT_MS', 2000)
        )
        store.ensure_indexes()
        return store
    return InMemoryResourceStore()


__all__ = [
    'ORDER_STATUSES',
    'DuplicateEmailError',
    'InMemoryResourceStore',
    'ResourceStore',
    'create_resource_store',
    'seed_store',
]
