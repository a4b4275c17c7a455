#!/usr/bin/env python3
"""
Flask application exposing position evaluation over HTTP.
"""

import logging
from typing import Optional

from flask import Flask
from flask_cors import CORS

from evalpool.config import Settings, load_settings
from evalpool.dispatcher import EvaluationDispatcher
from evalpool.pool import WorkerPool

log = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None,
               pool: Optional[WorkerPool] = None,
               dispatcher: Optional[EvaluationDispatcher] = None) -> Flask:
    """
    Application factory.

    The pool is owned by the caller when passed in. When omitted one is built
    from settings and stored on the app; whoever runs the app is responsible
    for calling pool.shutdown_all().
    """
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes

    if settings is None:
        settings = load_settings()
    if pool is None:
        pool = WorkerPool(settings.engine_path, max_workers=settings.pool_size,
                          handshake_timeout=settings.handshake_timeout,
                          threads=settings.engine_threads)
    if dispatcher is None:
        dispatcher = EvaluationDispatcher(pool, eval_timeout=settings.eval_timeout)

    app.extensions['evalpool'] = {
        'settings': settings,
        'pool': pool,
        'dispatcher': dispatcher,
    }

    # Register routes (import here to avoid circular imports)
    from web import routes
    routes.register_routes(app)

    return app


if __name__ == '__main__':
    from evalpool.cli import main
    main(['serve'])
