"""
Prometheus Metrics

Module-level collectors for authorization decisions, security events and the
event stream. Defined once per process so repeated application creation (as in
the test suite) never re-registers a collector.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

authorization_metrics = {
    'decisions_total': Counter(
        'bola_authz_decisions_total',
        'Authorization decisions by outcome',
        ['outcome', 'resource_type', 'variant']
    ),
    'role_checks_total': Counter(
        'bola_authz_role_checks_total',
        'Role-only policy evaluations',
        ['outcome', 'required_role']
    ),
}

event_metrics = {
    'events_total': Counter(
        'bola_security_events_total',
        'Security events emitted',
        ['severity', 'category', 'source']
    ),
    'access_records_total': Counter(
        'bola_access_records_total',
        'Owner accesses recorded to the access log only',
        ['source']
    ),
}

stream_metrics = {
    'deliveries_total': Counter(
        'bola_stream_deliveries_total',
        'Stream messages delivered to subscribers',
        ['message_type']
    ),
    'delivery_failures_total': Counter(
        'bola_stream_delivery_failures_total',
        'Stream delivery failures',
        ['action']
    ),
    'active_subscriptions': Gauge(
        'bola_stream_active_subscriptions',
        'Currently open stream subscriptions'
    ),
}


def render_metrics():
    """Return the Prometheus exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST


__all__ = [
    'authorization_metrics',
    'event_metrics',
    'stream_metrics',
    'render_metrics',
]
