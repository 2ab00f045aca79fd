"""
Application service registry.

The application factory builds one ``LabServices`` instance per Flask app and
stores it in ``app.extensions['bola_lab']``; route decorators and blueprints
reach their collaborators through ``get_services()`` instead of module-level
globals.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from flask import current_app

if TYPE_CHECKING:
    from bola_lab.auth.authorization import AuthorizationEngine
    from bola_lab.auth.identity import IdentityResolver
    from bola_lab.data.store import ResourceStore
    from bola_lab.events.aggregator import StatsAggregator
    from bola_lab.events.emitter import SecurityEventEmitter
    from bola_lab.events.stream import EventStreamPublisher

EXTENSION_NAME = 'bola_lab'


@dataclass
class LabServices:
    """Collaborators shared by every request of one application instance."""

    variant: str
    store: 'ResourceStore'
    identity_resolver: 'IdentityResolver'
    engine: 'AuthorizationEngine'
    emitter: 'SecurityEventEmitter'
    aggregator: 'StatsAggregator'
    publisher: Optional['EventStreamPublisher'] = None

    def init_app(self, app) -> None:
        app.extensions[EXTENSION_NAME] = self


def get_services() -> LabServices:
    """
    Get the service registry of the current Flask application.

    Raises:
        RuntimeError: If called outside an application built by ``create_app``
    """
    services = current_app.extensions.get(EXTENSION_NAME)
    if services is None:
        raise RuntimeError("BOLA lab services not initialized in Flask application")
    return services


__all__ = ['LabServices', 'get_services', 'EXTENSION_NAME']
