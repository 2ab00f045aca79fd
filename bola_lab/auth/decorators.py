"""
Route decorators applying the authorization engine.

``authorize_resource`` runs the full protected-object sequence for a view:

    parse id -> authorize -> emit event -> 404 or call the view

so every DENY / NOT_FOUND is recorded exactly once before the response is
built, and malformed ids fail with InputError (400) before any decision or
event. ``require_role`` applies the role-only policy to admin endpoints.

Both expect ``require_subject`` to have run first (it is applied here, so
views only stack one decorator).
"""

from functools import wraps
from typing import Callable

from flask import g, jsonify

from bola_lab.auth.authorization import (
    NOT_FOUND_MESSAGE,
    Action,
    ResourceRef,
    ResourceType,
    authorize_role,
    decision_status,
    parse_resource_id,
)
from bola_lab.auth.identity import Role, require_subject
from bola_lab.services import get_services


def not_found_response():
    """The single body used for DENY and NOT_FOUND alike."""
    return jsonify({'success': False, 'error': NOT_FOUND_MESSAGE}), 404


def authorize_resource(
    resource_type: ResourceType,
    action: Action = Action.READ,
    id_param: str = 'resource_id'
) -> Callable:
    """
    Protect a view addressing one object by id.

    The view is called with the ALLOW decision as its only argument; the
    validated id is ``decision.resource.id``.

    Args:
        resource_type: Type of the addressed object
        action: Operation recorded on the decision and its event
        id_param: URL variable carrying the raw id
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        @require_subject
        def wrapper(*args, **kwargs):
            resource = ResourceRef(resource_type, parse_resource_id(kwargs.pop(id_param)))
            services = get_services()

            decision = services.engine.authorize(g.subject, resource, action)
            services.emitter.emit_decision(decision)
            g.authorization = decision

            if decision_status(decision) != 200:
                return not_found_response()
            return func(decision, *args, **kwargs)

        return wrapper
    return decorator


def require_role(role: Role = Role.ADMIN) -> Callable:
    """
    Gate a view on the subject's role. Non-matching subjects get the same
    404 body as a denied object, and the attempt is recorded.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        @require_subject
        def wrapper(*args, **kwargs):
            decision = authorize_role(g.subject, role)
            get_services().emitter.emit_decision(decision)
            g.authorization = decision

            if not decision.allowed:
                return not_found_response()
            return func(*args, **kwargs)

        return wrapper
    return decorator


__all__ = ['authorize_resource', 'require_role', 'not_found_response']
