# backend/posledger/__init__.py
import logging

from flask import Flask, current_app

from .config import Config
from .extensions import db, migrate
from .validation import EngineError


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.stock_families import stock_families_bp
    from .routes.promotions import promotions_bp
    from .routes.customers import customers_bp
    from .routes.shifts import shifts_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(stock_families_bp)
    app.register_blueprint(promotions_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(sales_bp)

    @app.errorhandler(EngineError)
    def handle_engine_error(err: EngineError):
        return err.to_dict(), err.status_code

    @app.errorhandler(500)
    def handle_internal_error(err):
        current_app.logger.exception("Unhandled error")
        return {"error": "Internal server error", "kind": "internal"}, 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
