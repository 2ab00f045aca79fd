"""
Structured Logging Configuration

Application logging built on structlog and the stdlib logging module:

- ``setup_structured_logging`` configures structlog processors (logger name,
  level, ISO timestamp, correlation id) with JSON or console rendering.
- ``CorrelationManager`` keeps the per-request correlation id in a ContextVar.
- ``create_rotating_line_logger`` builds the size/count bounded file sinks
  used for the security event log and the access log; each record is one
  pre-serialized JSON line and rollover happens under the handler lock.
- ``init_request_logging`` registers before/after request hooks that propagate
  ``X-Correlation-ID``, log request start/end with duration, and append one
  line per request to the access log.
"""

import json
import logging
import logging.config
import logging.handlers
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import structlog
from flask import Flask, g, has_request_context, request

correlation_id_context: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

_LOGGING_CONFIGURED = False


class CorrelationManager:
    """Correlation ID management for request tracking."""

    @staticmethod
    def generate_correlation_id() -> str:
        return f"corr_{uuid.uuid4().hex[:16]}"

    def set_correlation_id(self, correlation_id: Optional[str] = None) -> str:
        correlation_id = correlation_id or self.generate_correlation_id()
        correlation_id_context.set(correlation_id)
        return correlation_id

    @staticmethod
    def get_correlation_id() -> Optional[str]:
        return correlation_id_context.get()

    @staticmethod
    def clear_correlation_id() -> None:
        correlation_id_context.set(None)


def create_correlation_processor() -> Callable:
    """
    Create structlog processor for correlation ID enrichment.

    Returns:
        Processor function for structlog
    """
    def processor(logger, method_name, event_dict):
        correlation_id = correlation_id_context.get()
        if correlation_id:
            event_dict.setdefault('correlation_id', correlation_id)
        return event_dict

    return processor


def setup_structured_logging(
    log_level: str = 'INFO',
    log_format: str = 'json',
    force: bool = False
) -> structlog.stdlib.BoundLogger:
    """
    Setup structured logging for the whole process.

    Args:
        log_level: Root log level name
        log_format: ``json`` or ``console``
        force: Reconfigure even if logging was configured before

    Returns:
        Configured structured logger instance
    """
    global _LOGGING_CONFIGURED

    if _LOGGING_CONFIGURED and not force:
        return structlog.get_logger('bola_lab')

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        create_correlation_processor(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == 'console':
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {'format': '%(message)s'},
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'plain',
                'stream': 'ext://sys.stdout',
            },
        },
        'loggers': {
            'bola_lab': {
                'handlers': ['console'],
                'level': log_level,
                'propagate': False,
            },
        },
    })

    _LOGGING_CONFIGURED = True

    logger = structlog.get_logger('bola_lab')
    logger.info(
        "Structured logging initialized",
        log_level=log_level,
        log_format=log_format
    )
    return logger


def create_rotating_line_logger(
    name: str,
    path: Path,
    max_bytes: int,
    backup_count: int
) -> logging.Logger:
    """
    Build a dedicated stdlib logger that appends one line per record to a
    rotating file.

    The logger does not propagate, so lines never leak into the console or
    the application log. Calling it again for the same name replaces the
    handler (log directory changes between app instances in tests).
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    line_logger = logging.getLogger(name)
    line_logger.setLevel(logging.INFO)
    line_logger.propagate = False

    for handler in list(line_logger.handlers):
        line_logger.removeHandler(handler)
        handler.close()

    handler = logging.handlers.RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setFormatter(logging.Formatter('%(message)s'))
    line_logger.addHandler(handler)
    return line_logger


def close_line_logger(line_logger: logging.Logger) -> None:
    """Flush and detach the file handlers of a line logger."""
    for handler in list(line_logger.handlers):
        handler.flush()
        line_logger.removeHandler(handler)
        handler.close()


def init_request_logging(app: Flask, access_logger: logging.Logger) -> None:
    """
    Register request/response logging hooks on the application.

    Args:
        app: Flask application
        access_logger: Line logger receiving one JSON access record per request
    """
    logger = structlog.get_logger('bola_lab.request')
    correlation_manager = CorrelationManager()

    @app.before_request
    def _start_request_logging():
        correlation_id = (
            request.headers.get('X-Correlation-ID') or
            request.headers.get('X-Request-ID') or
            correlation_manager.generate_correlation_id()
        )
        correlation_manager.set_correlation_id(correlation_id)
        g.request_start_time = time.perf_counter()

        logger.debug(
            "Request started",
            method=request.method,
            path=request.path,
            endpoint=request.endpoint
        )

    @app.after_request
    def _finish_request_logging(response):
        start_time = getattr(g, 'request_start_time', None)
        duration_ms = (time.perf_counter() - start_time) * 1000 if start_time else 0.0
        subject = getattr(g, 'subject', None)

        access_record = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'method': request.method,
            'url': request.full_path.rstrip('?'),
            'ip': request.remote_addr,
            'statusCode': response.status_code,
            'responseTime': f"{round(duration_ms)}ms",
            'user': subject.email if subject and subject.email else 'anonymous',
            'userId': subject.id if subject else None,
            'source': app.config.get('API_VARIANT'),
        }
        access_logger.info(json.dumps(access_record, default=str))

        log_method = logger.warning if response.status_code >= 400 else logger.info
        log_method(
            "Request completed",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2)
        )

        correlation_id = correlation_manager.get_correlation_id()
        if correlation_id:
            response.headers['X-Correlation-ID'] = correlation_id
        return response

    @app.teardown_request
    def _clear_request_logging(exc):
        correlation_manager.clear_correlation_id()


def get_request_context() -> Dict[str, Any]:
    """
    Request attributes attached to security events emitted inside a request.

    Returns an empty mapping outside of a request context.
    """
    if not has_request_context():
        return {}
    return {
        'method': request.method,
        'resource': request.path,
        'action': f"{request.method} {request.path}",
        'ip': request.remote_addr,
        'userAgent': (request.headers.get('User-Agent') or '')[:200] or None,
        'correlationId': correlation_id_context.get(),
    }


__all__ = [
    'CorrelationManager',
    'setup_structured_logging',
    'create_rotating_line_logger',
    'close_line_logger',
    'init_request_logging',
    'get_request_context',
]
