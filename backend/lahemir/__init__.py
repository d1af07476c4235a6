# backend/lahemir/__init__.py
from __future__ import annotations

from typing import Mapping, Optional

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: Optional[Mapping] = None, backend=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One service container per app: slots, registries, ledger, cart
    from .services.container import EXTENSION_KEY, build_services, get_services
    app.extensions[EXTENSION_KEY] = build_services(app.config, backend=backend)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.users import users_bp
    from .routes.pos import pos_bp
    from .routes.sales import sales_bp
    from .routes.settings import settings_bp
    from .routes.backup import backup_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(pos_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(backup_bp)

    from .decorators import error_response
    from .errors import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(exc):
        return error_response(exc)

    @app.before_request
    def sync_slots():
        # Pick up writes made by other processes sharing the database
        if request.endpoint != "system.health":
            changed = get_services().sync()
            if changed:
                app.logger.info("Reloaded slots changed elsewhere: %s", ", ".join(changed))

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
