# app/__init__.py
from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .settings import Config
from .extensions import db, migrate, login_manager, limiter


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(
        getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    )

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    from .services.payments import init_stripe

    init_stripe(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Register Blueprints
    # ======================
    from .auth import auth
    from .customer_links import customer_links_bp
    from .public import public
    from .webhooks import webhooks

    app.register_blueprint(auth)
    app.register_blueprint(customer_links_bp)
    app.register_blueprint(public)
    app.register_blueprint(webhooks)

    # ======================
    # CLI
    # ======================
    from .cli import create_admin_command

    app.cli.add_command(create_admin_command)

    # ======================
    # JSON errors
    # ======================
    # Every HTTP error (abort, raise NotFound(...), unhandled 500) leaves
    # as {"success": false, "error": ...}.
    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        if e.code and e.code >= 500:
            original = getattr(e, "original_exception", None)
            if original is not None:
                app.logger.error("Unhandled exception", exc_info=original)
        return jsonify({"success": False, "error": e.description}), e.code

    # ======================
    # Rate limit error handler
    # ======================
    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({"success": False, "error": "Too many requests. Please try again later."}), 429

    return app
