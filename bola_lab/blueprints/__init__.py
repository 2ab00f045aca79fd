"""
Flask Blueprints Package

Centralized blueprint registration for the application factory. Each module
exposes a ``create_*_blueprint`` factory so every application instance gets
its own Blueprint objects (and its own rate limits).

Blueprint Organization:
- auth (/api/auth/*): login and registration, with the stricter auth rate limit
- orders (/api/orders/*), users (/api/users/*), payments (/api/payments/*):
  resource endpoints behind the ownership authorization engine
- admin (/api/security/stats, /api/logs*): admin-only monitoring
- health (/health, /metrics): public, exempt from rate limiting
"""

from typing import Any, Dict, List, Optional

import structlog
from flask import Flask
from flask_limiter import Limiter

from bola_lab.blueprints.admin import create_admin_blueprint
from bola_lab.blueprints.auth import create_auth_blueprint
from bola_lab.blueprints.health import create_health_blueprint
from bola_lab.blueprints.orders import create_orders_blueprint
from bola_lab.blueprints.payments import create_payments_blueprint
from bola_lab.blueprints.users import create_users_blueprint

logger = structlog.get_logger(__name__)


def register_blueprints(app: Flask, rate_limiter: Optional[Limiter] = None) -> Dict[str, Any]:
    """
    Register every blueprint on the application.

    Args:
        app: Flask application instance from the application factory
        rate_limiter: Limiter used for the per-blueprint limits, if enabled

    Returns:
        Registration summary with blueprint names and total route count
    """
    auth_bp = create_auth_blueprint()
    health_bp = create_health_blueprint()

    if rate_limiter is not None:
        rate_limiter.limit(app.config['RATELIMIT_AUTH'])(auth_bp)
        rate_limiter.exempt(health_bp)

    blueprints = [
        auth_bp,
        create_orders_blueprint(),
        create_users_blueprint(),
        create_payments_blueprint(),
        create_admin_blueprint(),
        health_bp,
    ]

    registered: List[str] = []
    for blueprint in blueprints:
        app.register_blueprint(blueprint)
        registered.append(blueprint.name)

    total_routes = len([
        rule for rule in app.url_map.iter_rules()
        if rule.endpoint.split('.', 1)[0] in registered
    ])
    logger.info(
        "Blueprints registered",
        blueprints=registered,
        total_routes=total_routes,
        rate_limited=rate_limiter is not None
    )
    return {'blueprints': registered, 'total_routes': total_routes}


__all__ = ['register_blueprints']
