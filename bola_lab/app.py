"""
Flask Application Factory

Builds one fully wired BOLA lab application per call:

- configuration for the environment plus keyword overrides, validated before
  anything else is built (production refuses to start on problems)
- structlog logging, request logging hooks and the access log
- resource store (in-memory or MongoDB), seeded with demo data when empty
- identity resolver, ownership authorization engine with the policy selected
  by the API variant, security event emitter and stats aggregator
- Flask-CORS, Flask-Limiter and Flask-Talisman extensions
- Flask-SocketIO with the live event stream namespace
- blueprints and JSON error handlers

Every collaborator lives on the application (``app.extensions``), so several
applications (e.g. the secure and the vulnerable variant in one test run)
never share state.
"""

import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from flask import Flask, current_app, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.errors import RateLimitExceeded
from flask_limiter.util import get_remote_address
from flask_socketio import SocketIO
from flask_talisman import Talisman
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from bola_lab.auth.authorization import AuthorizationEngine, create_policy
from bola_lab.auth.exceptions import (
    AuthenticationError,
    BolaLabException,
    ConfigurationError,
    ErrorCode,
    InfrastructureError,
    create_safe_error_response,
    get_error_category,
)
from bola_lab.auth.identity import IdentityResolver, current_subject, extract_bearer_token
from bola_lab.blueprints import register_blueprints
from bola_lab.config.settings import (
    SUPPORTED_VARIANTS,
    get_config,
    resolve_enforce_ownership,
    validate_configuration,
)
from bola_lab.data import create_resource_store, seed_store
from bola_lab.events.aggregator import StatsAggregator, create_counter_store
from bola_lab.events.emitter import SecurityEventEmitter
from bola_lab.events.stream import EventStreamPublisher, register_event_stream
from bola_lab.events.taxonomy import EventKey
from bola_lab.monitoring.logging import CorrelationManager, init_request_logging, setup_structured_logging
from bola_lab.services import EXTENSION_NAME, LabServices

logger = structlog.get_logger(__name__)


def _rate_limit_key() -> str:
    """Authenticated callers are limited per user, everyone else per address."""
    token = extract_bearer_token(request.headers.get('Authorization'))
    if token:
        services = _services_or_none()
        if services is not None:
            try:
                return f"user:{services.identity_resolver.resolve(token).id}"
            except AuthenticationError:
                pass
    return get_remote_address()


def _services_or_none() -> Optional[LabServices]:
    return current_app.extensions.get(EXTENSION_NAME)


def _error_body(error: str, status_code: int, **extra: Any) -> Dict[str, Any]:
    body = {
        'success': False,
        'error': error,
        'status_code': status_code,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    body.update(extra)
    return body


class BolaLabApplicationFactory:
    """
    Application factory orchestrating configuration, services, extensions,
    blueprints and error handlers for one Flask application.
    """

    def create_application(self, config_name: Optional[str] = None, **config_overrides) -> Flask:
        """
        Create and configure a Flask application.

        Args:
            config_name: development, testing or production (defaults to FLASK_ENV)
            **config_overrides: Configuration values applied over the environment class

        Raises:
            ConfigurationError: If the API variant is unsupported, or on any problem in production
        """
        creation_start_time = time.time()
        app = Flask(__name__.split('.')[0])

        environment = self._configure_application(app, config_name, **config_overrides)
        setup_structured_logging(app.config['LOG_LEVEL'], app.config['LOG_FORMAT'])
        self._validate_configuration(app, environment)

        services = self._initialize_services(app)
        init_request_logging(app, services.emitter.access_logger)

        limiter = self._initialize_flask_extensions(app)
        self._initialize_event_stream(app, services)
        register_blueprints(app, limiter)
        self._configure_error_handlers(app, limiter)

        logger.info(
            "BOLA lab application created",
            environment=environment,
            variant=services.variant,
            ownership_enforced=services.engine.enforces_ownership,
            storage_backend=app.config['STORAGE_BACKEND'],
            stats_backend=app.config['STATS_BACKEND'],
            log_dir=app.config['LOG_DIR'],
            creation_time_ms=round((time.time() - creation_start_time) * 1000, 2)
        )
        return app

    def _configure_application(self, app: Flask, config_name: Optional[str], **config_overrides) -> str:
        environment = (config_name or os.getenv('FLASK_ENV', 'development')).lower()
        config_class = get_config(environment)
        app.config.update(config_class.to_dict())

        if config_overrides:
            app.config.update(config_overrides)

        app.config['API_VARIANT'] = str(app.config['API_VARIANT']).strip().lower()
        app.config['ENVIRONMENT'] = environment
        app.config['CONFIG_CLASS'] = config_class.__name__
        return environment

    def _validate_configuration(self, app: Flask, environment: str) -> None:
        problems = validate_configuration(app.config, environment)
        if not problems:
            return

        # an unknown variant must never silently serve the non-enforcing API
        if environment == 'production' or app.config['API_VARIANT'] not in SUPPORTED_VARIANTS:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(problems),
                metadata={'problems': problems}
            )
        for problem in problems:
            logger.warning("Configuration problem", environment=environment, problem=problem)

    def _initialize_services(self, app: Flask) -> LabServices:
        config = app.config
        variant = config['API_VARIANT']

        store = create_resource_store(config)
        if config.get('SEED_DEMO_DATA', True):
            hash_method = config['PASSWORD_HASH_METHOD']
            if seed_store(store, lambda password: generate_password_hash(password, method=hash_method)):
                logger.info("Demo data seeded", variant=variant)

        identity_resolver = IdentityResolver(
            config['JWT_SECRET_KEY'],
            algorithm=config['JWT_ALGORITHM'],
            expiration_hours=config['JWT_EXPIRATION_HOURS']
        )
        engine = AuthorizationEngine(store, create_policy(resolve_enforce_ownership(config)))

        emitter = SecurityEventEmitter(
            config['LOG_DIR'],
            source=variant,
            max_bytes=config['SECURITY_LOG_MAX_BYTES'],
            backup_count=config['SECURITY_LOG_BACKUP_COUNT'],
            access_backup_count=config['ACCESS_LOG_BACKUP_COUNT'],
            security_filename=config['SECURITY_LOG_FILENAME'],
            access_filename=config['ACCESS_LOG_FILENAME']
        )
        aggregator = StatsAggregator(create_counter_store(config))
        emitter.add_listener(aggregator)

        publisher = EventStreamPublisher(
            emitter.security_log_path,
            backlog_size=config['STREAM_BACKLOG_SIZE'],
            poll_interval=config['STREAM_POLL_INTERVAL'],
            max_failures=config['STREAM_MAX_DELIVERY_FAILURES']
        )

        services = LabServices(
            variant=variant,
            store=store,
            identity_resolver=identity_resolver,
            engine=engine,
            emitter=emitter,
            aggregator=aggregator,
            publisher=publisher
        )
        services.init_app(app)
        return services

    def _initialize_flask_extensions(self, app: Flask) -> Optional[Limiter]:
        CORS(
            app,
            origins=app.config['CORS_ORIGINS'],
            methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
            allow_headers=['Content-Type', 'Authorization', 'X-Correlation-ID'],
            expose_headers=['X-Correlation-ID']
        )

        # Lab service: plain HTTP and no CSP, the rest of Talisman's headers apply
        Talisman(
            app,
            force_https=False,
            strict_transport_security=False,
            content_security_policy=None,
            session_cookie_secure=False
        )

        limiter = None
        if app.config.get('RATELIMIT_ENABLED', True):
            limiter = Limiter(
                _rate_limit_key,
                app=app,
                storage_uri=app.config['RATELIMIT_STORAGE_URI'],
                default_limits=[app.config['RATELIMIT_DEFAULT']],
                headers_enabled=app.config['RATELIMIT_HEADERS_ENABLED']
            )
        app.extensions['bola_lab_limiter'] = limiter

        logger.debug(
            "Flask extensions initialized",
            cors_origins=app.config['CORS_ORIGINS'],
            rate_limiting_enabled=limiter is not None
        )
        return limiter

    def _initialize_event_stream(self, app: Flask, services: LabServices) -> SocketIO:
        socketio = SocketIO(
            app,
            cors_allowed_origins=app.config['CORS_ORIGINS'],
            async_mode='threading',
            logger=False,
            engineio_logger=False
        )
        register_event_stream(
            socketio,
            services.publisher,
            services.identity_resolver,
            require_admin=app.config['STREAM_REQUIRE_ADMIN'],
            autostart=app.config['STREAM_AUTOSTART']
        )
        return socketio

    def _configure_error_handlers(self, app: Flask, limiter: Optional[Limiter]) -> None:
        correlation_manager = CorrelationManager()

        @app.errorhandler(BolaLabException)
        def handle_lab_exception(error: BolaLabException):
            log_fields = dict(
                error_code=error.error_code.value,
                error_category=get_error_category(error.error_code),
                error_id=error.error_id,
                endpoint=request.endpoint,
                method=request.method,
                path=request.path
            )
            if isinstance(error, InfrastructureError):
                logger.error("Infrastructure failure", error_message=error.message, **log_fields)
            else:
                logger.info("Request rejected", error_message=error.message, **log_fields)

            # Credential failures already produced LOGIN_FAILURE
            if (isinstance(error, AuthenticationError) and
                    error.error_code is not ErrorCode.AUTH_CREDENTIALS_INVALID):
                services = _services_or_none()
                if services is not None:
                    services.emitter.emit(EventKey.UNAUTHENTICATED_ACCESS, payload={
                        'blocked': True,
                        'message': f"Unauthenticated request to {request.path}: {error.message}",
                        'errorCode': error.error_code.value,
                    })

            return jsonify(create_safe_error_response(error)), error.http_status

        @app.errorhandler(RateLimitExceeded)
        def handle_rate_limit_exceeded(error):
            retry_after = None
            current_limit = getattr(limiter, 'current_limit', None) if limiter else None
            reset_at = getattr(current_limit, 'reset_at', None)
            if reset_at:
                retry_after = max(0, int(reset_at - time.time()))

            services = _services_or_none()
            if services is not None:
                subject = current_subject()
                services.emitter.emit(EventKey.RATE_LIMIT_EXCEEDED, payload={
                    'subject': subject,
                    'blocked': True,
                    'message': f"Rate limit exceeded on {request.path}",
                    'limit': str(error.description),
                })
            logger.warning(
                "Rate limit exceeded",
                path=request.path,
                method=request.method,
                remote_addr=request.remote_addr,
                limit=str(error.description)
            )
            return jsonify(_error_body(
                'Too many requests, please try again later',
                429,
                retryAfter=retry_after
            )), 429

        @app.errorhandler(404)
        def handle_not_found(error):
            return jsonify(_error_body('Endpoint not found', 404)), 404

        @app.errorhandler(405)
        def handle_method_not_allowed(error):
            return jsonify(_error_body(
                f'The {request.method} method is not allowed for this resource',
                405
            )), 405

        @app.errorhandler(HTTPException)
        def handle_http_exception(error: HTTPException):
            return jsonify(_error_body(error.description or error.name, error.code)), error.code

        @app.errorhandler(Exception)
        def handle_unexpected_error(error: Exception):
            correlation_id = correlation_manager.get_correlation_id()
            logger.error(
                "Unexpected error",
                error_message=str(error),
                error_type=type(error).__name__,
                endpoint=request.endpoint,
                method=request.method,
                path=request.path,
                exc_info=True
            )
            return jsonify(_error_body(
                'Internal server error',
                500,
                correlation_id=correlation_id
            )), 500


_application_factory = BolaLabApplicationFactory()


def create_app(config_name: Optional[str] = None, **config_overrides) -> Flask:
    """
    Create a BOLA lab Flask application.

    Examples:
        app = create_app('testing', API_VARIANT='vulnerable', LOG_DIR=tmp_path)
        application = create_app('production')
    """
    return _application_factory.create_application(config_name, **config_overrides)


def get_socketio(app: Flask) -> SocketIO:
    """The Flask-SocketIO server bound to ``app``."""
    return app.extensions['socketio']


def cleanup_application(app: Flask) -> None:
    """Stop the stream, close the log sinks and release the store."""
    services = app.extensions.get(EXTENSION_NAME)
    if services is None:
        return
    if services.publisher is not None:
        services.publisher.stop()
    services.emitter.close()
    services.store.close()
    logger.info("BOLA lab application cleaned up", variant=services.variant)


__all__ = ['BolaLabApplicationFactory', 'create_app', 'get_socketio', 'cleanup_application']
