# backend/fleetstock/__init__.py
from __future__ import annotations

import uuid

from flask import Flask, g, jsonify, request

from .config import Config
from .errors import StockError
from .extensions import db, migrate
from .logging_config import LogContext, configure_logging, get_logger


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(level=app.config["LOG_LEVEL"], json_format=app.config["LOG_JSON"])
    logger = get_logger("app")

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.vehicles import vehicles_bp
    from .routes.transfers import transfers_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(vehicles_bp)
    app.register_blueprint(transfers_bp)

    @app.before_request
    def bind_request_context():
        LogContext.clear()
        g.actor_id = request.headers.get("X-Actor-Id") or None
        LogContext.set(
            request_id=request.headers.get("X-Request-Id") or uuid.uuid4().hex,
            actor_id=g.actor_id,
        )

    @app.errorhandler(StockError)
    def handle_stock_error(e):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        # HTTP errors (404 for unknown routes, 405, ...) keep their own response
        code = getattr(e, "code", None)
        if isinstance(code, int) and 400 <= code < 500:
            return jsonify({"error": getattr(e, "description", str(e))}), code
        db.session.rollback()
        logger.error("unhandled_exception", exc_info=True, extra={"path": request.path})
        return jsonify({"error": "Internal server error"}), 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
