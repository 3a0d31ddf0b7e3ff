# backend/doorstep/__init__.py
from __future__ import annotations

from typing import Any, Mapping

from flask import Flask, jsonify

from .config import Config
from .errors import DeliveryCoreError
from .extensions import db, migrate


def error_response(exc: DeliveryCoreError):
    """JSON body and status for a business-rule rejection."""
    return jsonify({"error": exc.to_dict()}), exc.http_status


def create_app(test_config: Mapping[str, Any] | None = None, *, notification_sink=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.coverage import coverage_bp
    from .routes.deliveries import deliveries_bp
    from .routes.admin import admin_bp
    from .routes.subscriptions import subscriptions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(coverage_bp)
    app.register_blueprint(deliveries_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(subscriptions_bp)

    # Notification sink (default logs through app.logger)
    from .services.notification_service import init_notifications
    init_notifications(app, notification_sink)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
