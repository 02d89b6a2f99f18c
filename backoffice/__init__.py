"""
backoffice/__init__.py

Flask application factory for the Contracting Back Office.

Requirements:
- Clear architecture: HTTP + persistence here, pure computation in
  backoffice.billing.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- Server-side access control: tenant scoping and the READ_ONLY guard.

Errors:
- billing.BillingError subclasses carry their own HTTP status and JSON
  details; one handler renders them all.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .billing import BillingError
from .extensions import csrf, db, login_manager, migrate
from .models import User
from .security import readonly_guard

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("backoffice").setLevel(level)


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

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        if not str(user_id).isdigit():
            return None
        user = db.session.get(User, int(user_id))
        if user is None or not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: READ_ONLY guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _readonly_guard_hook():
        """
        READ_ONLY enforcement (POST/PUT/PATCH/DELETE blocked).

        This is a safety net. Mutating routes still carry write_access_required.
        """
        return readonly_guard()

    # ----------------------------------------------------------------------
    # Error handlers (JSON)
    # ----------------------------------------------------------------------
    @app.errorhandler(BillingError)
    def _billing_error(exc: BillingError):
        db.session.rollback()
        logger.info("%s: %s", exc.__class__.__name__, exc.message)
        return jsonify({"error": exc.message, **exc.details()}), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return jsonify({"error": exc.description or exc.name}), exc.code

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.invoices import invoices_bp
    from .blueprints.reports import reports_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(reports_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-demo")
    @click.option("--password", default="change-me", show_default=True, help="Password for the demo users.")
    def seed_demo_command(password: str):
        """Seed a demo tenant, users and master data."""
        from .seed import seed_demo

        tenant = seed_demo(password=password)
        click.echo(f"Demo tenant '{tenant.name}' seeded.")

    @app.cli.command("create-db")
    def create_db_command():
        """Create all tables without migrations (development only)."""
        db.create_all()
        click.echo("Tables created.")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "app": app.config.get("APP_NAME")})

    return app
