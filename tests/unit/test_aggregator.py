"""
Unit tests for event aggregation: the pure fold functions, the live
StatsAggregator over both counter stores, and concurrent updates.
"""

import random
import threading
from unittest.mock import MagicMock

import pytest
import redis

from bola_lab.auth.exceptions import ErrorCode, InfrastructureError
from bola_lab.events.aggregator import (
    InMemoryCounterStore,
    RedisCounterStore,
    SourceStats,
    StatsAggregator,
    create_counter_store,
    fold,
    fold_all,
)
from bola_lab.events.classifier import classify

RECORDS = [
    {'event': 'UNAUTHORIZED_ACCESS_BLOCKED', 'severity': 'HIGH', 'source': 'secure', 'resource': '/api/orders/3'},
    {'event': 'NONEXISTENT_RESOURCE_BLOCKED', 'severity': 'HIGH', 'source': 'secure', 'resource': '/api/orders/9'},
    {'event': 'ADMIN_ACCESS_GRANTED', 'severity': 'LOW', 'source': 'secure', 'resource': '/api/users'},
    {'event': 'BOLA_ATTEMPT', 'severity': 'HIGH', 'source': 'vulnerable', 'resource': '/api/orders/3'},
    {'event': 'BOLA_DELETE', 'severity': 'HIGH', 'source': 'vulnerable', 'resource': '/api/orders/4'},
    {'event': 'LOGIN_FAILURE', 'severity': 'MEDIUM', 'source': 'vulnerable', 'resource': '/api/auth/login'},
    {'event': 'ADMIN_ACCESS_DENIED', 'severity': 'MEDIUM', 'source': 'secure', 'resource': '/api/logs'},
    {'event': 'UNSOURCED', 'severity': 'HIGH'},
]


@pytest.fixture
def events():
    return [classify(record) for record in RECORDS]


@pytest.mark.unit
class TestFold:

    def test_totals(self, events):
        stats = fold_all(events)

        assert stats['secure'] == SourceStats(total=4, blocked=2, critical=2)
        assert stats['vulnerable'] == SourceStats(total=3, blocked=0, critical=2)
        assert set(stats) == {'secure', 'vulnerable'}

    def test_fold_is_order_independent(self, events):
        expected = fold_all(events)
        shuffled = list(events)
        for seed in range(10):
            random.Random(seed).shuffle(shuffled)
            assert fold_all(shuffled) == expected

    def test_fold_does_not_mutate_input(self, events):
        initial = {'secure': SourceStats(total=1)}

        fold(initial, events[0])

        assert initial == {'secure': SourceStats(total=1)}

    def test_folding_continues_from_partial_stats(self, events):
        left, right = events[:3], events[3:]

        assert fold_all(right, fold_all(left)) == fold_all(events)

    def test_unsourced_event_is_ignored(self, events):
        assert fold({}, events[-1]) == {}


@pytest.mark.unit
class TestStatsAggregatorRecord:

    def test_increments_follow_fold(self, events):
        store = MagicMock()
        aggregator = StatsAggregator(store)

        aggregator.record(events[0])

        calls = [call.args for call in store.increment.call_args_list]
        assert calls == [
            ('source:secure', 'total', 1),
            ('source:secure', 'blocked', 1),
            ('source:secure', 'critical', 1),
            ('severity', 'HIGH'),
            ('category', events[0].category.key),
        ]

    def test_unsourced_event_is_not_counted(self, events):
        store = MagicMock()

        StatsAggregator(store).record(events[-1])

        store.increment.assert_not_called()


@pytest.mark.unit
class TestStatsAggregator:

    def test_snapshot(self, events):
        aggregator = StatsAggregator(InMemoryCounterStore())
        for record in RECORDS:
            aggregator(record)

        snapshot = aggregator.snapshot()

        assert snapshot['bySource']['secure'] == {'total': 4, 'blocked': 2, 'critical': 2}
        assert snapshot['bySource']['vulnerable'] == {'total': 3, 'blocked': 0, 'critical': 2}
        assert snapshot['bySeverity'] == {'HIGH': 4, 'LOW': 1, 'MEDIUM': 2}
        assert snapshot['byCategory']['bola'] == 2
        assert aggregator.stats_by_source() == fold_all(events)

    def test_reset(self):
        aggregator = StatsAggregator(InMemoryCounterStore())
        aggregator.observe(RECORDS[0])

        aggregator.reset()

        assert aggregator.snapshot() == {'bySource': {}, 'bySeverity': {}, 'byCategory': {}}

    def test_concurrent_observation_loses_no_updates(self):
        aggregator = StatsAggregator(InMemoryCounterStore())
        threads_count, per_thread = 8, 250
        barrier = threading.Barrier(threads_count)

        def worker():
            barrier.wait()
            for index in range(per_thread):
                aggregator.observe(RECORDS[index % 2])

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats = aggregator.stats_by_source()['secure']
        assert stats.total == threads_count * per_thread
        assert stats.blocked == threads_count * per_thread
        assert stats.critical == threads_count * per_thread


@pytest.mark.unit
class TestRedisCounterStore:

    def test_increment_uses_pipeline(self):
        client = MagicMock()
        pipeline = client.pipeline.return_value
        pipeline.execute.return_value = [1, 5]
        store = RedisCounterStore(client, namespace='test')

        assert store.increment('source:secure', 'total') == 5
        pipeline.sadd.assert_called_once_with('test:buckets', 'source:secure')
        pipeline.hincrby.assert_called_once_with('test:source:secure', 'total', 1)

    def test_snapshot_decodes_values(self):
        client = MagicMock()
        client.hgetall.return_value = {b'total': b'3', 'blocked': '1'}
        store = RedisCounterStore(client, namespace='test')

        assert store.snapshot('source:secure') == {'total': 3, 'blocked': 1}
        client.hgetall.assert_called_once_with('test:source:secure')

    def test_buckets_and_reset(self):
        client = MagicMock()
        client.smembers.return_value = {b'severity', 'source:secure'}
        store = RedisCounterStore(client, namespace='test')

        assert store.buckets() == ['severity', 'source:secure']
        store.reset()
        client.delete.assert_called_once_with('test:buckets', 'test:severity', 'test:source:secure')

    def test_redis_failure_becomes_infrastructure_error(self):
        client = MagicMock()
        client.hgetall.side_effect = redis.ConnectionError("connection refused")
        store = RedisCounterStore(client)

        with pytest.raises(InfrastructureError) as exc_info:
            store.snapshot('severity')

        assert exc_info.value.error_code is ErrorCode.INFRA_COUNTER_STORE_FAILURE

    def test_aggregator_over_redis_store(self):
        client = MagicMock()
        client.pipeline.return_value.execute.return_value = [0, 1]
        aggregator = StatsAggregator(RedisCounterStore(client, namespace='test'))

        aggregator.observe(RECORDS[0])

        hincrby_calls = client.pipeline.return_value.hincrby.call_args_list
        fields = [(call.args[0], call.args[1]) for call in hincrby_calls]
        assert ('test:source:secure', 'total') in fields
        assert ('test:source:secure', 'blocked') in fields
        assert ('test:severity', 'HIGH') in fields
        assert ('test:category', 'orders') in fields


@pytest.mark.unit
def test_create_counter_store_selects_backend(mocker):
    from_url = mocker.patch.object(redis.Redis, 'from_url')

    assert isinstance(create_counter_store({'STATS_BACKEND': 'memory'}), InMemoryCounterStore)
    client = from_url.return_value
    client.smembers.return_value = {'source:vulnerable'}

    store = create_counter_store({
        'STATS_BACKEND': 'redis',
        'REDIS_URL': 'redis://cache:6379/1',
        'API_VARIANT': 'vulnerable',
    })

    assert isinstance(store, RedisCounterStore)
    assert store.namespace == 'bola_lab:stats:vulnerable'
    from_url.assert_called_once_with('redis://cache:6379/1', decode_responses=True)
    # counters left over from a previous process are cleared on startup
    client.delete.assert_called_once_with(
        'bola_lab:stats:vulnerable:buckets', 'bola_lab:stats:vulnerable:source:vulnerable'
    )
