"""
BOLA Lab WSGI Entry Point

``application`` is the WSGI callable served by Gunicorn (see gunicorn.conf.py).
Running this module directly starts the Flask-SocketIO development server:

    python app.py --variant secure --port 3001
    python app.py --variant vulnerable --port 3000

The variant can also be chosen with the ``API_VARIANT`` environment variable;
the two variants are meant to run as separate processes sharing nothing but
the log directory layout.
"""

import argparse
import os

import structlog

from bola_lab.app import cleanup_application, create_app, get_socketio

logger = structlog.get_logger('bola_lab.server')

DEFAULT_PORTS = {'secure': 3001, 'vulnerable': 3000}

application = create_app(os.getenv('FLASK_ENV'))
app = application


def create_dev_server(variant: str, host: str, port: int, config_name: str, debug: bool = False) -> None:
    """Build an application for ``variant`` and serve it with Socket.IO support."""
    if (application.config['API_VARIANT'] == variant and
            application.config['ENVIRONMENT'] == config_name):
        server_app = application
    else:
        server_app = create_app(config_name, API_VARIANT=variant)
    socketio = get_socketio(server_app)

    logger.info(
        "Starting BOLA lab server",
        variant=variant,
        host=host,
        port=port,
        environment=config_name
    )
    try:
        socketio.run(
            server_app,
            host=host,
            port=port,
            debug=debug,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    finally:
        cleanup_application(server_app)


def main() -> None:
    parser = argparse.ArgumentParser(description='BOLA lab API server')
    parser.add_argument(
        '--variant',
        choices=sorted(DEFAULT_PORTS),
        default=os.getenv('API_VARIANT', 'secure').strip().lower(),
        help='API variant to serve (default: secure)'
    )
    parser.add_argument(
        '--host',
        default=os.getenv('FLASK_HOST', '127.0.0.1'),
        help='Server host (default: 127.0.0.1)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Server port (default: 3001 secure, 3000 vulnerable)'
    )
    parser.add_argument(
        '--config',
        default=os.getenv('FLASK_ENV', 'development'),
        choices=['development', 'production', 'testing'],
        help='Configuration environment (default: development)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable Flask debug mode'
    )
    args = parser.parse_args()

    port = args.port or int(os.getenv('PORT', DEFAULT_PORTS[args.variant]))
    try:
        create_dev_server(args.variant, args.host, port, args.config, debug=args.debug)
    except KeyboardInterrupt:
        logger.info("Server stopped by user", variant=args.variant)


if __name__ == '__main__':
    main()
