"""Configuration package for the BOLA lab service."""

from bola_lab.config.settings import (
    BaseConfig,
    DevelopmentConfig,
    TestingConfig,
    ProductionConfig,
    get_config,
    resolve_enforce_ownership,
    validate_configuration,
)

__all__ = [
    'BaseConfig',
    'DevelopmentConfig',
    'TestingConfig',
    'ProductionConfig',
    'get_config',
    'resolve_enforce_ownership',
    'validate_configuration',
]
