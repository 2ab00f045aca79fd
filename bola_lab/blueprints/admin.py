"""
Admin monitoring endpoints: aggregate statistics and recent security events.

All routes are gated by the role-only policy and are read-only.
"""

from flask import Blueprint, current_app, jsonify

from bola_lab.auth.decorators import require_role
from bola_lab.events.aggregator import fold_all
from bola_lab.events.classifier import classify
from bola_lab.events.insights import build_request_insights, enrich, iter_log_records, summarize_logs
from bola_lab.events.taxonomy import EventCategory
from bola_lab.services import get_services

BOLA_LOG_LIMIT = 50

PROTECTED_ENDPOINTS = [
    {'method': 'GET', 'path': '/api/orders/<id>', 'protection': 'Ownership validation'},
    {'method': 'PUT', 'path': '/api/orders/<id>', 'protection': 'Ownership validation'},
    {'method': 'DELETE', 'path': '/api/orders/<id>', 'protection': 'Ownership validation'},
    {'method': 'GET', 'path': '/api/users/<id>', 'protection': 'Self or admin only'},
    {'method': 'PUT', 'path': '/api/users/<id>', 'protection': 'Self or admin only'},
    {'method': 'DELETE', 'path': '/api/users/<id>', 'protection': 'Admin only'},
    {'method': 'GET', 'path': '/api/users', 'protection': 'Admin only with pagination'},
    {'method': 'GET', 'path': '/api/payments/<id>', 'protection': 'Ownership and data masking'},
    {'method': 'GET', 'path': '/api/payments', 'protection': 'Own payments only'},
    {'method': 'POST', 'path': '/api/payments', 'protection': 'Order ownership validation'},
]


def create_admin_blueprint() -> Blueprint:
    admin_bp = Blueprint('admin', __name__, url_prefix='/api')

    @admin_bp.route('/security/stats', methods=['GET'])
    @require_role()
    def security_stats():
        services = get_services()
        emitter = services.emitter
        recent = [classify(record) for record in services.publisher.recent(current_app.config['RECENT_EVENTS_LIMIT'])]
        recent_by_source = fold_all(recent)

        body = {'success': True}
        body.update(summarize_logs(emitter.security_log_path, emitter.access_log_path))
        body.update({
            'variant': services.variant,
            'ownershipEnforced': services.engine.enforces_ownership,
            'aggregates': services.aggregator.snapshot(),
            'recentBySource': {source: stats.to_dict() for source, stats in recent_by_source.items()},
            'insights': build_request_insights(recent),
            'protectedEndpoints': PROTECTED_ENDPOINTS if services.engine.enforces_ownership else [],
        })
        return jsonify(body)

    @admin_bp.route('/logs', methods=['GET'])
    @require_role()
    def recent_logs():
        services = get_services()
        records = services.publisher.recent(current_app.config['RECENT_EVENTS_LIMIT'])
        return jsonify({'success': True, 'total': len(records), 'logs': enrich(records)})

    @admin_bp.route('/logs/bola', methods=['GET'])
    @require_role()
    def bola_logs():
        emitter = get_services().emitter
        bola_events = [
            record for record in iter_log_records(emitter.security_log_path)
            if classify(record).category is EventCategory.BOLA
        ]
        return jsonify({
            'success': True,
            'total_bola_attempts': len(bola_events),
            'logs': enrich(bola_events[-BOLA_LOG_LIMIT:]),
        })

    return admin_bp


__all__ = ['create_admin_blueprint', 'PROTECTED_ENDPOINTS']
