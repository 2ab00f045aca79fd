"""
Public health and Prometheus endpoints.
"""

from datetime import datetime, timezone

from flask import Blueprint, Response, current_app, jsonify

from bola_lab.events.insights import summarize_logs
from bola_lab.monitoring.metrics import render_metrics
from bola_lab.services import get_services


def create_health_blueprint() -> Blueprint:
    health_bp = Blueprint('health', __name__)

    @health_bp.route('/health', methods=['GET'])
    def health():
        services = get_services()
        storage_ok = services.store.ping()
        body = {
            'status': services.variant if storage_ok else 'degraded',
            'variant': services.variant,
            'ownershipEnforced': services.engine.enforces_ownership,
            'storage': 'ok' if storage_ok else 'unavailable',
            'security_stats': summarize_logs(
                services.emitter.security_log_path,
                services.emitter.access_log_path
            ),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': current_app.config['APP_VERSION'],
        }
        return jsonify(body), 200 if storage_ok else 503

    @health_bp.route('/metrics', methods=['GET'])
    def metrics():
        payload, content_type = render_metrics()
        return Response(payload, mimetype=content_type)

    return health_bp


__all__ = ['create_health_blueprint']
