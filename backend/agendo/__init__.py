# backend/agendo/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Real-time feed: capture committed changes from every session
    from .services.realtime_service import feed, install_session_listeners
    feed.configure(queue_size=app.config["FEED_QUEUE_SIZE"])
    install_session_listeners()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.appointments import appointments_bp
    from .routes.checkout import checkout_bp
    from .routes.cash import cash_bp
    from .routes.stock import stock_bp
    from .routes.clients import clients_bp
    from .routes.realtime import realtime_bp
    from .routes.settings import settings_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(appointments_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(cash_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(realtime_bp)
    app.register_blueprint(settings_bp)

    # Input rejected before a route's own error handling (e.g. a non-object body)
    from .responses import error_response
    from .validation import ValidationError
    app.register_error_handler(ValidationError, error_response)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-Actor-Id, X-Tenant-Id, X-Actor-Role, X-Professional-Id"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
