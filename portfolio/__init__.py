"""
Portfolio Platform
Flask Application Factory.

Usage:
    from portfolio import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from portfolio.config import config
from portfolio.models import db
from portfolio.middleware.jwt_auth import init_jwt_middleware
from portfolio.middleware.logging_config import configure_logging
from portfolio.middleware.rate_limiter import init_rate_limits
from portfolio.middleware.security_headers import init_security_headers
from portfolio.middleware.timing import init_request_timing
from portfolio.utils.errors import init_error_handlers

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)
    init_error_handlers(app)

    # ── Request guards (upload cap + Content-Type) ───────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", app.config["MAX_UPLOAD_BYTES"] + 1024 * 1024)

    @app.before_request
    def _guard_request():
        from flask import abort, request as _req
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if _req.data and "json" not in ct and "multipart/form-data" not in ct:
                abort(415, description="Content-Type must be application/json")

    @app.teardown_request
    def _discard_uncommitted(exc):
        # A use case that raised before commit leaves nothing behind
        db.session.rollback()

    # ── Import all models so Alembic can detect them ─────────────────────
    from portfolio.models import approval as _approval_models      # noqa: F401
    from portfolio.models import audit as _audit_models            # noqa: F401
    from portfolio.models import auth as _auth_models              # noqa: F401
    from portfolio.models import document as _document_models      # noqa: F401
    from portfolio.models import scheduling as _scheduling_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if not app.config.get("TESTING"):
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from portfolio.blueprints.approval_bp import approval_bp
    from portfolio.blueprints.auth_bp import admin_bp, auth_bp
    from portfolio.blueprints.document_bp import document_bp
    from portfolio.blueprints.health_bp import health_bp
    from portfolio.blueprints.scheduling_bp import scheduling_bp
    from portfolio.blueprints.workflow_bp import workflow_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(document_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(approval_bp)
    app.register_blueprint(scheduling_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-roles")
    def seed_roles_cmd():
        """Seed the built-in roles and permissions."""
        from portfolio.services.identity_service import seed_default_roles
        count = seed_default_roles()
        click.echo(f"Seeded {count} new roles, permissions and grants.")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
