"""
Event aggregation.

Two layers:

- ``fold`` / ``fold_all`` are pure functions over ``{source: SourceStats}``
  mappings. Folding is a per-field sum, so any order of arrival of a fixed
  multiset of events yields the same totals.
- ``StatsAggregator`` keeps the live counters in an injectable
  ``CounterStore`` whose only mutation is an atomic per-field increment
  (a lock for the in-memory store, ``HINCRBY`` for Redis). The increments
  for each event come from ``fold``, and concurrent folds never lose updates.
"""

import threading
from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

import redis
import structlog

from bola_lab.auth.exceptions import ErrorCode, InfrastructureError
from bola_lab.events.classifier import ClassifiedEvent, classify

logger = structlog.get_logger(__name__)

SOURCE_BUCKET_PREFIX = 'source:'
SEVERITY_BUCKET = 'severity'
CATEGORY_BUCKET = 'category'


@dataclass(frozen=True)
class SourceStats:
    total: int = 0
    blocked: int = 0
    critical: int = 0

    def __add__(self, other: 'SourceStats') -> 'SourceStats':
        return SourceStats(
            total=self.total + other.total,
            blocked=self.blocked + other.blocked,
            critical=self.critical + other.critical
        )

    @classmethod
    def of(cls, event: ClassifiedEvent) -> 'SourceStats':
        return cls(total=1, blocked=int(event.blocked), critical=int(event.critical))

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


AggregateStats = Mapping[str, SourceStats]


def fold(stats: AggregateStats, event: ClassifiedEvent) -> Dict[str, SourceStats]:
    """Return new stats with ``event`` counted; events without a source are ignored."""
    updated = dict(stats)
    if not event.source:
        return updated
    updated[event.source] = updated.get(event.source, SourceStats()) + SourceStats.of(event)
    return updated


def fold_all(events: Iterable[ClassifiedEvent], stats: Optional[AggregateStats] = None) -> Dict[str, SourceStats]:
    result = dict(stats or {})
    for event in events:
        result = fold(result, event)
    return result


class CounterStore(ABC):
    """Named buckets of integer counters with atomic per-field increments."""

    @abstractmethod
    def increment(self, bucket: str, field: str, amount: int = 1) -> int:
        ...

    @abstractmethod
    def snapshot(self, bucket: str) -> Dict[str, int]:
        ...

    @abstractmethod
    def buckets(self) -> List[str]:
        ...

    @abstractmethod
    def reset(self) -> None:
        ...


class InMemoryCounterStore(CounterStore):
    """Process-local counters guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._buckets: Dict[str, Counter] = defaultdict(Counter)

    def increment(self, bucket: str, field: str, amount: int = 1) -> int:
        with self._lock:
            self._buckets[bucket][field] += amount
            return self._buckets[bucket][field]

    def snapshot(self, bucket: str) -> Dict[str, int]:
        with self._lock:
            return dict(self._buckets.get(bucket, {}))

    def buckets(self) -> List[str]:
        with self._lock:
            return sorted(self._buckets)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


class RedisCounterStore(CounterStore):
    """
    Counters kept in Redis hashes, shared by every worker of the node.

    Args:
        client: redis-py client
        namespace: Key prefix for the hashes and the bucket index set
    """

    def __init__(self, client: redis.Redis, namespace: str = 'bola_lab:stats'):
        self.client = client
        self.namespace = namespace
        self._index_key = f"{namespace}:buckets"

    @classmethod
    def from_url(cls, url: str, namespace: str = 'bola_lab:stats') -> 'RedisCounterStore':
        return cls(redis.Redis.from_url(url, decode_responses=True), namespace=namespace)

    def _key(self, bucket: str) -> str:
        return f"{self.namespace}:{bucket}"

    def _fail(self, operation: str, error: redis.RedisError) -> InfrastructureError:
        logger.error("Redis counter store failed", operation=operation, error=str(error))
        return InfrastructureError(
            f"Redis counter store {operation} failed: {error}",
            error_code=ErrorCode.INFRA_COUNTER_STORE_FAILURE
        )

    def increment(self, bucket: str, field: str, amount: int = 1) -> int:
        try:
            pipeline = self.client.pipeline()
            pipeline.sadd(self._index_key, bucket)
            pipeline.hincrby(self._key(bucket), field, amount)
            return int(pipeline.execute()[-1])
        except redis.RedisError as e:
            raise self._fail('increment', e) from e

    def snapshot(self, bucket: str) -> Dict[str, int]:
        try:
            raw = self.client.hgetall(self._key(bucket))
        except redis.RedisError as e:
            raise self._fail('snapshot', e) from e
        return {_decode(field): int(value) for field, value in raw.items()}

    def buckets(self) -> List[str]:
        try:
            return sorted(_decode(bucket) for bucket in self.client.smembers(self._index_key))
        except redis.RedisError as e:
            raise self._fail('buckets', e) from e

    def reset(self) -> None:
        try:
            keys = [self._key(bucket) for bucket in self.buckets()]
            self.client.delete(self._index_key, *keys)
        except redis.RedisError as e:
            raise self._fail('reset', e) from e


def _decode(value: Any) -> str:
    return value.decode('utf-8') if isinstance(value, bytes) else str(value)


class StatsAggregator:
    """
    Live aggregate counters per source, per severity and per category.

    Registered as a listener on the security event emitter; ``observe`` is
    safe to call from any number of request threads.
    """

    def __init__(self, store: CounterStore):
        self.store = store

    def __call__(self, record: Mapping[str, Any]) -> None:
        self.observe(record)

    def observe(self, record: Mapping[str, Any]) -> ClassifiedEvent:
        event = classify(record)
        self.record(event)
        return event

    def record(self, event: ClassifiedEvent) -> None:
        increments = fold({}, event)
        if not increments:
            return
        for source, stats in increments.items():
            bucket = f"{SOURCE_BUCKET_PREFIX}{source}"
            for field, amount in stats.to_dict().items():
                if amount:
                    self.store.increment(bucket, field, amount)
        if event.severity is not None:
            self.store.increment(SEVERITY_BUCKET, event.severity.label)
        self.store.increment(CATEGORY_BUCKET, event.category.key)

    def stats_by_source(self) -> Dict[str, SourceStats]:
        stats = {}
        for bucket in self.store.buckets():
            if not bucket.startswith(SOURCE_BUCKET_PREFIX):
                continue
            counters = self.store.snapshot(bucket)
            stats[bucket[len(SOURCE_BUCKET_PREFIX):]] = SourceStats(
                total=counters.get('total', 0),
                blocked=counters.get('blocked', 0),
                critical=counters.get('critical', 0)
            )
        return stats

    def severity_counts(self) -> Dict[str, int]:
        return self.store.snapshot(SEVERITY_BUCKET)

    def category_counts(self) -> Dict[str, int]:
        return self.store.snapshot(CATEGORY_BUCKET)

    def snapshot(self) -> Dict[str, Any]:
        return {
            'bySource': {source: stats.to_dict() for source, stats in self.stats_by_source().items()},
            'bySeverity': self.severity_counts(),
            'byCategory': self.category_counts(),
        }

    def reset(self) -> None:
        self.store.reset()


def create_counter_store(settings: Mapping[str, Any]) -> CounterStore:
    """
    Counter store for the configured backend.

    Redis counters live under a per-variant namespace and are cleared here, so
    aggregates start from zero on every process start like the in-memory store.
    """
    if settings.get('STATS_BACKEND', 'memory') == 'redis':
        namespace = f"bola_lab:stats:{settings.get('API_VARIANT', 'secure')}"
        store = RedisCounterStore.from_url(settings['REDIS_URL'], namespace=namespace)
        store.reset()
        logger.info("Redis aggregate counters reset", namespace=namespace)
        return store
    return InMemoryCounterStore()


__all__ = [
    'SourceStats',
    'AggregateStats',
    'fold',
    'fold_all',
    'CounterStore',
    'InMemoryCounterStore',
    'RedisCounterStore',
    'StatsAggregator',
    'create_counter_store',
]
