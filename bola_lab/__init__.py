"""
BOLA Lab Application Package
============================

Flask service demonstrating Broken Object-Level Authorization (BOLA/IDOR) by
serving the same resource model through two API variants: a secure variant
that enforces per-request ownership checks and a vulnerable variant that does
not. Every access decision is written to an append-only security event log,
classified, aggregated and streamed to connected monitoring dashboards.

Package Structure:
- bola_lab.auth: identity resolution, ownership authorization engine, exceptions
- bola_lab.events: security event emitter, classifier, aggregator, stream publisher
- bola_lab.data: resource store contract with in-memory and MongoDB backends
- bola_lab.blueprints: HTTP routes for auth, orders, users, payments and monitoring
- bola_lab.monitoring: structured logging and Prometheus metrics
- bola_lab.config: environment-specific configuration
"""

__version__ = "1.0.0"


def create_app(config_name=None, **config_overrides):
    """Create the Flask application (lazy import keeps package import cheap)."""
    from bola_lab.app import create_app as _create_app

    return _create_app(config_name, **config_overrides)


__all__ = ['create_app', '__version__']
