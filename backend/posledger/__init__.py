# backend/posledger/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.transactions import transactions_bp
    from .routes.customers import customers_bp
    from .routes.stores import stores_bp
    from .routes.reports import reports_bp, commissions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(stores_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(commissions_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
