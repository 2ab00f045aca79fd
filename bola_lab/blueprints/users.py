"""
User endpoints.

``GET|PUT /api/users/<id>`` use reflexive ownership (a user owns its own
record); listing and deletion are admin-only.
"""

import math
from typing import Any, Dict

from flask import Blueprint, g, jsonify

from bola_lab.auth.authorization import Action, AuthorizationDecision, ResourceType, parse_resource_id
from bola_lab.auth.decorators import authorize_resource, not_found_response, require_role
from bola_lab.auth.exceptions import ErrorCode, InputError
from bola_lab.auth.identity import require_subject
from bola_lab.blueprints.validation import PaginationSchema, UserUpdateSchema, validate_request_data
from bola_lab.events.taxonomy import EventKey
from bola_lab.services import get_services


def serialize_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'id': user['id'],
        'email': user['email'],
        'name': user['name'],
        'role': user['role'],
        'createdAt': user['created_at'],
    }


def create_users_blueprint() -> Blueprint:
    users_bp = Blueprint('users', __name__, url_prefix='/api/users')

    @users_bp.route('', methods=['GET'])
    @require_role()
    @validate_request_data(PaginationSchema, location='args')
    def list_users():
        store = get_services().store
        page, limit = g.validated_data['page'], g.validated_data['limit']
        users = store.list_users(page, limit)
        total = store.count_users()
        return jsonify({
            'success': True,
            'count': len(users),
            'total': total,
            'page': page,
            'totalPages': math.ceil(total / limit),
            'users': [serialize_user(user) for user in users],
        })

    @users_bp.route('/me/profile', methods=['GET'])
    @require_subject
    def get_profile():
        user = get_services().store.get_user(g.subject.id)
        if user is None:
            return not_found_response()
        return jsonify({'success': True, 'user': serialize_user(user)})

    @users_bp.route('/<resource_id>', methods=['GET'])
    @authorize_resource(ResourceType.USER, Action.READ)
    def get_user(decision: AuthorizationDecision):
        user = get_services().store.get_user(decision.resource.id)
        if user is None:
            return not_found_response()
        body = {'success': True, 'user': serialize_user(user)}
        if get_services().variant == 'vulnerable':
            body['security_note'] = 'VULNERABLE: any authenticated user can read this profile (BOLA)'
        return jsonify(body)

    @users_bp.route('/<resource_id>', methods=['PUT'])
    @authorize_resource(ResourceType.USER, Action.UPDATE)
    @validate_request_data(UserUpdateSchema)
    def update_user(decision: AuthorizationDecision):
        data = g.validated_data
        if not get_services().store.update_user(decision.resource.id, data['name'], data['email']):
            return not_found_response()
        return jsonify({'success': True, 'message': 'User updated successfully'})

    @users_bp.route('/<resource_id>', methods=['DELETE'])
    @require_role()
    def delete_user(resource_id: str):
        services = get_services()
        user_id = parse_resource_id(resource_id)
        if user_id == g.subject.id:
            raise InputError(
                "Admin attempted to delete own account",
                error_code=ErrorCode.INPUT_CONFLICT,
                user_message="You cannot delete your own account"
            )

        if not services.store.delete_user(user_id):
            return not_found_response()

        services.emitter.emit(EventKey.USER_DELETED_BY_ADMIN, payload={
            'subject': g.subject,
            'resource_type': ResourceType.USER.value,
            'resource_id': user_id,
            'owner_id': user_id,
            'message': f"Admin {g.subject.id} deleted user {user_id}",
        })
        return jsonify({'success': True, 'message': 'User deleted successfully'})

    return users_bp


__all__ = ['create_users_blueprint', 'serialize_user']
