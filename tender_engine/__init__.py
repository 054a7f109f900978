"""
tender_engine/__init__.py

Flask application factory for the Tender Evaluation & Award Engine.

Service requirements:
- JSON API only; the engine trusts the tenant/user identity resolved upstream.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev and tests.
- Expected failures are EngineError subclasses rendered to one JSON shape:
  {"code": ..., "message": ..., <payload>}
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .errors import EngineError
from .extensions import csrf, db, login_manager, migrate
from .security import (
    current_tenant_id,
    load_user_from_request,
    unauthorized_response,
    viewer_readonly_guard,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def _configure_logging(app: Flask) -> None:
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger(__name__).setLevel(level)
    app.logger.setLevel(level)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(EngineError)
    def _engine_error(exc: EngineError):
        logger.debug("engine error %s on %s %s", exc.code, request.method, request.path)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        code = (exc.name or "HTTP_ERROR").upper().replace(" ", "_")
        return jsonify({"code": code, "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def _unexpected_error(exc: Exception):
        db.session.rollback()
        logger.exception(
            "unhandled error tenant=%s endpoint=%s args=%s",
            current_tenant_id(), request.endpoint, request.view_args,
        )
        return jsonify({"code": "SERVER_ERROR", "message": "Unexpected server error."}), 500


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)
    login_manager.request_loader(load_user_from_request)
    login_manager.unauthorized_handler(unauthorized_response)

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: Viewer read-only guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _viewer_guard_hook():
        """
        Viewer read-only enforcement (POST/PUT/PATCH/DELETE blocked).

        This is a safety net. Each route must still enforce its own permissions.
        """
        return viewer_readonly_guard()

    # ----------------------------------------------------------------------
    # Blueprints (JSON API, CSRF exempt)
    # ----------------------------------------------------------------------
    from .blueprints.awards import awards_bp
    from .blueprints.contracts import contracts_bp
    from .blueprints.packages import packages_bp
    from .blueprints.submissions import submissions_bp

    for blueprint in (packages_bp, submissions_bp, awards_bp, contracts_bp):
        csrf.exempt(blueprint)
        app.register_blueprint(blueprint)

    _register_error_handlers(app)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (use `flask db upgrade` once migrations exist)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-demo")
    @click.option("--tenant", default="demo", show_default=True, help="Tenant id to seed.")
    def seed_demo_command(tenant: str):
        """Seed idempotent demo data."""
        from .seed import seed_demo_data

        created = seed_demo_data(tenant)
        click.echo(f"Demo data seeded for tenant '{tenant}': {created}")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "app": app.config.get("APP_NAME")})

    return app
