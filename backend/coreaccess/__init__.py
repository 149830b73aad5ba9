# backend/coreaccess/__init__.py
from flask import Flask, jsonify, request

from .config import Config
from .extensions import db, migrate



def register_error_handlers(app: Flask) -> None:
    from .services.access_engine import Decision, DenyReason
    from .services.errors import LimitReachedError, PartialDeleteFailure, PersistenceFailure
    from .services.tenant_service import TenantAccessError

    @app.errorhandler(PartialDeleteFailure)
    def handle_partial_delete(exc):
        app.logger.error("Partial delete: %s remaining=%s", exc, exc.remaining)
        return jsonify({"error": str(exc), "remaining": exc.remaining, "retry": True}), 503

    @app.errorhandler(PersistenceFailure)
    def handle_persistence_failure(exc):
        return jsonify({"error": str(exc), "retry": True}), 503

    @app.errorhandler(LimitReachedError)
    def handle_limit_reached(exc):
        decision = Decision.deny(DenyReason.LIMIT_REACHED)
        return jsonify({
            "error": "Access denied",
            "reason": decision.reason,
            "message": decision.message,
            "limit": exc.limit_key,
            "max": exc.limit,
            "current": exc.current,
            "upgrade_required": True,
        }), 403

    @app.errorhandler(TenantAccessError)
    def handle_tenant_access(exc):
        # Cross-tenant lookups read as "not found" so ids do not leak
        return jsonify({"error": "Not found"}), 404


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

    # Decision policy consulted by every access decorator
    from .services.access_engine import POLICY_EXTENSION_KEY, DecisionPolicy
    app.extensions.setdefault(POLICY_EXTENSION_KEY, DecisionPolicy())

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.access import access_bp
    from .routes.locations import locations_bp
    from .routes.team import team_bp
    from .routes.subscription import subscription_bp
    from .routes.admin import admin_bp  # Platform admin: tenant selection

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(access_bp)
    app.register_blueprint(locations_bp)
    app.register_blueprint(team_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(admin_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = app.config.get("CORS_ALLOWED_ORIGINS") or ()
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Location-Id"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
