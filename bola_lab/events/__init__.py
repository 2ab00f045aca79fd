"""
Security event pipeline: taxonomy, emitter, classifier, aggregator, insights
and the live event stream.
"""

from bola_lab.events.aggregator import (
    InMemoryCounterStore,
    RedisCounterStore,
    SourceStats,
    StatsAggregator,
    create_counter_store,
    fold,
)
from bola_lab.events.classifier import ClassifiedEvent, classify
from bola_lab.events.emitter import SecurityEvent, SecurityEventEmitter, classify_decision
from bola_lab.events.insights import build_request_insights, summarize_logs
from bola_lab.events.stream import (
    EventStreamPublisher,
    LogTailer,
    StreamSubscription,
    SubscriptionState,
    register_event_stream,
)
from bola_lab.events.taxonomy import EventCategory, EventKey, Severity, describe_event

__all__ = [
    'InMemoryCounterStore',
    'RedisCounterStore',
    'SourceStats',
    'StatsAggregator',
    'create_counter_store',
    'fold',
    'ClassifiedEvent',
    'classify',
    'SecurityEvent',
    'SecurityEventEmitter',
    'classify_decision',
    'build_request_insights',
    'summarize_logs',
    'EventStreamPublisher',
    'LogTailer',
    'StreamSubscription',
    'SubscriptionState',
    'register_event_stream',
    'EventCategory',
    'EventKey',
    'Severity',
    'describe_event',
]
