"""
Environment-Specific Configuration

Configuration classes for the BOLA lab service. Every setting is read from the
process environment (optionally populated from a ``.env`` file through
python-dotenv) with safe development defaults. The active configuration is
chosen by ``FLASK_ENV`` and the API variant by ``API_VARIANT``.

Configuration Areas:
- Flask core settings and JWT signing parameters
- API variant selection (secure / vulnerable) and the ownership enforcement toggle
- Security event log location, rotation size and retention count
- Event stream backlog size, polling interval and subscriber gating
- Storage and aggregation backends (in-memory, MongoDB, Redis)
- Flask-Limiter rate limiting and Flask-CORS settings
"""

import os
from typing import Any, Dict, List, Optional, Type

import structlog
from dotenv import load_dotenv

from bola_lab.auth.exceptions import ConfigurationError

# Load .env before any class attribute reads the environment
load_dotenv()

logger = structlog.get_logger(__name__)

SUPPORTED_VARIANTS = ('secure', 'vulnerable')
SUPPORTED_STORAGE_BACKENDS = ('memory', 'mongodb')
SUPPORTED_STATS_BACKENDS = ('memory', 'redis')


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


class BaseConfig:
    """
    Base configuration shared by all environments.
    """

    # Flask Core Configuration
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-me')
    JSON_SORT_KEYS = False
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', '1048576'))  # 1MB
    TESTING = False
    DEBUG = False

    # Application Metadata
    APP_NAME = os.getenv('APP_NAME', 'bola-lab')
    APP_VERSION = os.getenv('APP_VERSION', '1.0.0')

    # JWT Identity Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-jwt-secret-change-me')
    JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
    JWT_EXPIRATION_HOURS = int(os.getenv('JWT_EXPIRATION_HOURS', '24'))
    PASSWORD_HASH_METHOD = os.getenv('PASSWORD_HASH_METHOD', 'pbkdf2:sha256')

    # API Variant Configuration
    API_VARIANT = os.getenv('API_VARIANT', 'secure').strip().lower()
    # None means "derive from API_VARIANT"
    ENFORCE_OWNERSHIP: Optional[bool] = (
        _env_bool('ENFORCE_OWNERSHIP', 'true') if os.getenv('ENFORCE_OWNERSHIP') else None
    )

    # Security Event Log Configuration
    LOG_DIR = os.getenv('LOG_DIR', os.path.join(os.getcwd(), 'logs'))
    SECURITY_LOG_FILENAME = 'security.log'
    ACCESS_LOG_FILENAME = 'access.log'
    SECURITY_LOG_MAX_BYTES = int(os.getenv('SECURITY_LOG_MAX_BYTES', str(5 * 1024 * 1024)))
    SECURITY_LOG_BACKUP_COUNT = int(os.getenv('SECURITY_LOG_BACKUP_COUNT', '5'))
    ACCESS_LOG_BACKUP_COUNT = int(os.getenv('ACCESS_LOG_BACKUP_COUNT', '3'))

    # Event Stream Configuration
    STREAM_BACKLOG_SIZE = int(os.getenv('STREAM_BACKLOG_SIZE', '20'))
    STREAM_POLL_INTERVAL = float(os.getenv('STREAM_POLL_INTERVAL', '0.5'))
    STREAM_REQUIRE_ADMIN = _env_bool('STREAM_REQUIRE_ADMIN', 'true')
    STREAM_MAX_DELIVERY_FAILURES = int(os.getenv('STREAM_MAX_DELIVERY_FAILURES', '3'))
    STREAM_AUTOSTART = _env_bool('STREAM_AUTOSTART', 'true')
    RECENT_EVENTS_LIMIT = int(os.getenv('RECENT_EVENTS_LIMIT', '100'))

    # Storage Backend Configuration
    STORAGE_BACKEND = os.getenv('STORAGE_BACKEND', 'memory').lower()
    MONGODB_URI = os.getenv('MONGODB_URI', 'mongodb://localhost:27017')
    MONGODB_DATABASE = os.getenv('MONGODB_DATABASE', 'bola_lab')
    MONGODB_TIMEOUT_MS = int(os.getenv('MONGODB_TIMEOUT_MS', '2000'))
    SEED_DEMO_DATA = _env_bool('SEED_DEMO_DATA', 'true')

    # Aggregation Backend Configuration
    STATS_BACKEND = os.getenv('STATS_BACKEND', 'memory').lower()
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

    # Flask-Limiter Configuration
    RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', 'true')
    RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '100 per minute')
    RATELIMIT_AUTH = os.getenv('RATELIMIT_AUTH', '5 per minute')
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True

    # Flask-CORS Configuration
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*').split(',')

    # Structured Logging Configuration
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Export upper-case settings for ``app.config.update``."""
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if key.isupper()
        }


class DevelopmentConfig(BaseConfig):
    """Local development: console logs, debug enabled."""

    DEBUG = True
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'console')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG').upper()


class TestingConfig(BaseConfig):
    """
    Testing configuration optimized for automated test runs.

    Rate limits are effectively disabled, the stream polls quickly and
    storage/aggregation always use the in-process backends.
    """

    TESTING = True
    DEBUG = True
    SECRET_KEY = 'test-secret-key'
    JWT_SECRET_KEY = 'test-jwt-secret'
    STORAGE_BACKEND = 'memory'
    STATS_BACKEND = 'memory'
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    STREAM_POLL_INTERVAL = 0.05
    STREAM_AUTOSTART = False
    PASSWORD_HASH_METHOD = 'pbkdf2:sha256:1000'
    LOG_FORMAT = 'console'
    LOG_LEVEL = 'WARNING'


class ProductionConfig(BaseConfig):
    """Production: JSON logs, secrets must come from the environment."""

    LOG_FORMAT = 'json'
    SECRET_KEY = os.getenv('SECRET_KEY')
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')


config_map: Dict[str, Type[BaseConfig]] = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(environment: Optional[str] = None) -> Type[BaseConfig]:
    """
    Get configuration class for the specified environment.

    Args:
        environment: Target environment name (defaults to FLASK_ENV)

    Returns:
        Configuration class for the specified environment

    Raises:
        ConfigurationError: If environment is not supported
    """
    if environment is None:
        environment = os.getenv('FLASK_ENV', 'development')

    environment = environment.lower()

    if environment not in config_map:
        raise ConfigurationError(
            f"Unsupported environment '{environment}'. "
            f"Supported environments: {list(config_map.keys())}"
        )

    config_class = config_map[environment]
    logger.debug(
        "Configuration class selected",
        environment=environment,
        config_class=config_class.__name__
    )
    return config_class


def resolve_enforce_ownership(settings: Dict[str, Any]) -> bool:
    """Explicit ENFORCE_OWNERSHIP wins; otherwise every variant but vulnerable enforces."""
    explicit = settings.get('ENFORCE_OWNERSHIP')
    if explicit is not None:
        return bool(explicit)
    return settings.get('API_VARIANT') != 'vulnerable'


def validate_configuration(settings: Dict[str, Any], environment: str = 'development') -> List[str]:
    """
    Validate a flattened configuration mapping.

    Returns:
        List of human-readable problems; empty when the configuration is usable
    """
    problems = []

    if settings.get('API_VARIANT') not in SUPPORTED_VARIANTS:
        problems.append(
            f"API_VARIANT must be one of {SUPPORTED_VARIANTS}, got {settings.get('API_VARIANT')!r}"
        )
    if settings.get('STORAGE_BACKEND') not in SUPPORTED_STORAGE_BACKENDS:
        problems.append(
            f"STORAGE_BACKEND must be one of {SUPPORTED_STORAGE_BACKENDS}"
        )
    if settings.get('STATS_BACKEND') not in SUPPORTED_STATS_BACKENDS:
        problems.append(
            f"STATS_BACKEND must be one of {SUPPORTED_STATS_BACKENDS}"
        )
    if settings.get('SECURITY_LOG_MAX_BYTES', 0) <= 0:
        problems.append("SECURITY_LOG_MAX_BYTES must be positive")
    if settings.get('SECURITY_LOG_BACKUP_COUNT', 0) < 1:
        problems.append("SECURITY_LOG_BACKUP_COUNT must be at least 1")
    if settings.get('STREAM_BACKLOG_SIZE', 0) < 0:
        problems.append("STREAM_BACKLOG_SIZE cannot be negative")
    if settings.get('STREAM_POLL_INTERVAL', 0) <= 0:
        problems.append("STREAM_POLL_INTERVAL must be positive")

    if environment == 'production':
        for secret in ('SECRET_KEY', 'JWT_SECRET_KEY'):
            if not settings.get(secret):
                problems.append(f"{secret} must be set in production")

    return problems


__all__ = [
    'BaseConfig',
    'DevelopmentConfig',
    'TestingConfig',
    'ProductionConfig',
    'config_map',
    'get_config',
    'resolve_enforce_ownership',
    'validate_configuration',
    'SUPPORTED_VARIANTS',
]
