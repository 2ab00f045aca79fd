"""
Gunicorn WSGI Server Configuration

Serves ``app:application`` for one API variant per Gunicorn instance:

    API_VARIANT=secure gunicorn -c gunicorn.conf.py app:application
    API_VARIANT=vulnerable GUNICORN_BIND=0.0.0.0:3000 gunicorn -c gunicorn.conf.py app:application

A single threaded worker is used: the event stream keeps its subscriptions
in process memory and Socket.IO long-polling needs sticky sessions, so the
lab scales by threads rather than worker processes.
"""

import os

# =============================================================================
# SERVER SOCKET CONFIGURATION
# =============================================================================

_DEFAULT_PORTS = {'secure': '3001', 'vulnerable': '3000'}
_variant = os.getenv("API_VARIANT", "secure").strip().lower()

bind = os.getenv("GUNICORN_BIND", f"0.0.0.0:{_DEFAULT_PORTS.get(_variant, '3001')}")
backlog = 2048

# =============================================================================
# WORKER PROCESS CONFIGURATION
# =============================================================================

workers = 1
worker_class = "gthread"
threads = int(os.getenv("GUNICORN_THREADS", "16"))

max_requests = 0

# =============================================================================
# TIMEOUT CONFIGURATION
# =============================================================================

# Stream connections are long-lived
timeout = 120
keepalive = 5
graceful_timeout = 30

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
capture_output = True

# =============================================================================
# PROCESS MANAGEMENT
# =============================================================================

proc_name = f"bola-lab-{_variant}"
daemon = False
preload_app = False

raw_env = [
    "FLASK_APP=app:application"
]


def on_starting(server):
    server.log.info("BOLA lab (%s) starting on %s", _variant, bind)


def worker_int(worker):
    worker.log.info("Worker %s shutting down gracefully", worker.pid)


def worker_exit(server, worker):
    """Flush the event logs and stop the stream before the worker exits."""
    from app import application
    from bola_lab.app import cleanup_application

    cleanup_application(application)


def when_ready(server):
    server.log.info("BOLA lab application ready to serve requests")


# =============================================================================
# DEVELOPMENT CONFIGURATION OVERRIDES
# =============================================================================

if os.getenv("FLASK_ENV") == "development":
    timeout = 0
    reload = True
    loglevel = "debug"
    reload_extra_files = [
        "app.py",
    ]

# =============================================================================
# RESOURCE LIMITS
# =============================================================================

limit_request_line = 8192
limit_request_fields = 100
limit_request_field_size = 8192


def validate_configuration():
    """Validate Gunicorn settings for this deployment."""
    issues = []

    if workers != 1:
        issues.append("Event stream subscriptions are per process; run exactly one worker")
    if _variant not in _DEFAULT_PORTS:
        issues.append(f"Unknown API_VARIANT {_variant!r}")
    if loglevel == "debug" and os.getenv("FLASK_ENV") == "production":
        issues.append("Debug logging should not be used in production")

    return issues
