# backend/salesdesk/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app: engines are built from the URI there
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.roles import roles_bp
    from .routes.sales import sales_bp
    from .routes.prims import prims_bp
    from .routes.communications import communications_bp
    from .routes.penalties import penalties_bp
    from .routes.announcements import announcements_bp
    from .routes.activities import activities_bp
    from .routes.payment_methods import payment_methods_bp
    from .routes.system_settings import system_settings_bp
    from .routes.sales_import import sales_import_bp  # Excel import, rollback and backups
    from .routes.migration import migration_bp  # Historical yearly totals -> daily records
    from .routes.reports import reports_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(prims_bp)
    app.register_blueprint(communications_bp)
    app.register_blueprint(penalties_bp)
    app.register_blueprint(announcements_bp)
    app.register_blueprint(activities_bp)
    app.register_blueprint(payment_methods_bp)
    app.register_blueprint(system_settings_bp)
    app.register_blueprint(sales_import_bp)
    app.register_blueprint(migration_bp)
    app.register_blueprint(reports_bp)

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
