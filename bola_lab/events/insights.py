"""
Request insights and log summaries for the monitoring endpoints.
"""

import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Union

import structlog

from bola_lab.events.classifier import ClassifiedEvent, classify
from bola_lab.events.taxonomy import EventCategory, is_blocked_key

logger = structlog.get_logger(__name__)

TOP_CATEGORIES = 6
TOP_ENDPOINTS = 5
TOP_EVENT_HIGHLIGHTS = 4


def _empty_insights() -> Dict[str, Any]:
    return {
        'total': 0,
        'categories': [],
        'methodMix': [],
        'topEndpoints': [],
        'specialCounts': {
            'loginAttempts': 0,
            'bolaAlerts': 0,
            'adminCalls': 0,
            'writeOps': 0,
            'readOps': 0,
        },
        'eventHighlights': [],
    }


def build_request_insights(records: Iterable[Union[Mapping[str, Any], ClassifiedEvent]]) -> Dict[str, Any]:
    """
    Summarize a window of events: category shares, HTTP method mix, busiest
    endpoints, special counters and the most frequent event keys.

    Ties keep first-seen order.
    """
    events = [
        record if isinstance(record, ClassifiedEvent) else classify(record)
        for record in records
        if isinstance(record, (Mapping, ClassifiedEvent))
    ]
    if not events:
        return _empty_insights()

    total = len(events)
    category_counts: Counter = Counter()
    method_counts: Counter = Counter()
    endpoints: Dict[str, Dict[str, Any]] = {}
    highlights: Dict[str, Dict[str, Any]] = {}
    special = _empty_insights()['specialCounts']

    for event in events:
        category_counts[event.category] += 1
        method_counts[event.method] += 1

        endpoint_key = f"{event.method} {event.endpoint}"
        entry = endpoints.setdefault(endpoint_key, {
            'key': endpoint_key,
            'method': event.method,
            'endpoint': event.endpoint,
            'count': 0,
            'type': event.category.key,
        })
        entry['count'] += 1

        if event.category is EventCategory.AUTH and event.method == 'POST':
            special['loginAttempts'] += 1
        if event.category is EventCategory.BOLA:
            special['bolaAlerts'] += 1
        if event.category is EventCategory.ADMIN:
            special['adminCalls'] += 1
        if event.method == 'GET':
            special['readOps'] += 1
        else:
            special['writeOps'] += 1

        meta = event.meta
        highlight = highlights.setdefault(meta.key, dict(meta.to_dict(), count=0))
        highlight['count'] += 1

    categories = [
        {
            'id': category.key,
            'label': category.label,
            'color': category.color,
            'count': count,
            'share': f"{count / total * 100:.1f}",
        }
        for category, count in category_counts.most_common(TOP_CATEGORIES)
    ]
    method_mix = [
        {'method': method, 'count': count, 'share': round(count / total * 100)}
        for method, count in method_counts.most_common()
    ]
    top_endpoints = sorted(endpoints.values(), key=lambda item: item['count'], reverse=True)
    event_highlights = sorted(highlights.values(), key=lambda item: item['count'], reverse=True)

    return {
        'total': total,
        'categories': categories,
        'methodMix': method_mix,
        'topEndpoints': top_endpoints[:TOP_ENDPOINTS],
        'specialCounts': special,
        'eventHighlights': event_highlights[:TOP_EVENT_HIGHLIGHTS],
    }


def iter_log_records(path: Path) -> Iterator[Dict[str, Any]]:
    """Yield the JSON objects of a line log, skipping malformed lines."""
    if not path.exists():
        return
    with path.open('r', encoding='utf-8', errors='replace') as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except ValueError:
                logger.debug("Skipping malformed log line", path=str(path))
                continue
            if isinstance(record, dict):
                yield record


def summarize_logs(security_log: Path, access_log: Path) -> Dict[str, Any]:
    """Totals over the current (non-rotated) security and access logs."""
    total_security = 0
    blocked_attempts = 0
    rate_limit_blocks = 0
    unique_users = set()
    unique_ips = set()

    for record in iter_log_records(security_log):
        total_security += 1
        event_key = str(record.get('event') or '')
        if is_blocked_key(event_key):
            blocked_attempts += 1
        if event_key.upper() == 'RATE_LIMIT_EXCEEDED':
            rate_limit_blocks += 1
        user = record.get('subjectEmail') or record.get('subjectId')
        if user not in (None, '', 'anonymous'):
            unique_users.add(user)
        if record.get('ip'):
            unique_ips.add(record['ip'])

    total_access = sum(1 for _ in iter_log_records(access_log))

    return {
        'totalSecurityLogs': total_security,
        'totalAccessLogs': total_access,
        'blockedAttempts': blocked_attempts,
        'rateLimitBlocks': rate_limit_blocks,
        'uniqueUsers': len(unique_users),
        'uniqueIPs': len(unique_ips),
        'lastUpdated': datetime.now(timezone.utc).isoformat(),
    }


def enrich(records: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Attach category and display metadata to each record."""
    return [classify(record).to_dict() for record in records]


__all__ = [
    'build_request_insights',
    'summarize_logs',
    'iter_log_records',
    'enrich',
]
