"""Logging and metrics for the BOLA lab service."""

from bola_lab.monitoring.logging import (
    CorrelationManager,
    get_request_context,
    setup_structured_logging,
)
from bola_lab.monitoring.metrics import (
    authorization_metrics,
    event_metrics,
    render_metrics,
    stream_metrics,
)

__all__ = [
    'CorrelationManager',
    'get_request_context',
    'setup_structured_logging',
    'authorization_metrics',
    'event_metrics',
    'render_metrics',
    'stream_metrics',
]
