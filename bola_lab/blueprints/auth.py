"""
Authentication endpoints: login and registration.
"""

import structlog
from flask import Blueprint, current_app, g, jsonify
from werkzeug.security import check_password_hash, generate_password_hash

from bola_lab.auth.exceptions import AuthenticationError, ErrorCode
from bola_lab.blueprints.validation import LoginSchema, RegisterSchema, validate_request_data
from bola_lab.events.taxonomy import EventKey
from bola_lab.services import get_services

logger = structlog.get_logger(__name__)


def hash_password(password: str) -> str:
    return generate_password_hash(password, method=current_app.config['PASSWORD_HASH_METHOD'])


def create_auth_blueprint() -> Blueprint:
    auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

    @auth_bp.route('/login', methods=['POST'])
    @validate_request_data(LoginSchema)
    def login():
        services = get_services()
        credentials = g.validated_data
        user = services.store.get_user_by_email(credentials['email'])

        if user is None or not check_password_hash(user['password'], credentials['password']):
            services.emitter.emit(EventKey.LOGIN_FAILURE, payload={
                'subject_email': credentials['email'],
                'blocked': True,
                'message': f"Failed login for {credentials['email']}",
            })
            raise AuthenticationError(
                f"Invalid credentials for {credentials['email']}",
                error_code=ErrorCode.AUTH_CREDENTIALS_INVALID,
                user_message="Invalid credentials"
            )

        token = services.identity_resolver.issue_token(user)
        services.emitter.emit(EventKey.LOGIN_SUCCESS, payload={
            'subject_id': user['id'],
            'subject_email': user['email'],
            'message': f"User {user['email']} logged in",
            'role': user['role'],
        })
        return jsonify({
            'success': True,
            'token': token,
            'user': {
                'id': user['id'],
                'email': user['email'],
                'name': user['name'],
                'role': user['role'],
            },
        })

    @auth_bp.route('/register', methods=['POST'])
    @validate_request_data(RegisterSchema)
    def register():
        services = get_services()
        data = g.validated_data
        user = services.store.create_user(
            email=data['email'],
            password_hash=hash_password(data['password']),
            name=data['name']
        )
        logger.info("User registered", user_id=user['id'])
        return jsonify({
            'success': True,
            'message': 'User registered successfully',
            'userId': user['id'],
        }), 201

    return auth_bp


__all__ = ['create_auth_blueprint', 'hash_password']
