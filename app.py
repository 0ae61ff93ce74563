import logging

import click
from flask import Flask, request
from flask_migrate import Migrate
from sqlalchemy import inspect
from werkzeug.exceptions import HTTPException

from config import Config
from routes import (
    health_bp, auth_bp, listings_bp, slots_bp, promotions_bp,
    payments_bp, webhook_bp, notifications_bp, sock,
)
from models import db
from models.user import User, Role
from services.notifications import cleanup_expired_notifications
from services.promotions import expire_lapsed_promotions
from services.push import LoggingPushSender
from services.realtime import InMemoryConnectionRegistry, start_sweeper
from utils.seed import seed_roles
from utils.auth_context import load_current_user
from utils.errors import ServiceError
from utils.responses import error_response
from security.csrf import csrf_protect

logger = logging.getLogger(__name__)


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(listings_bp)
    app.register_blueprint(slots_bp)
    app.register_blueprint(promotions_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(notifications_bp)
    sock.init_app(app)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default roles at startup (safe & idempotent)
    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # before the first `flask db upgrade` there is nothing to seed
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    # Delivery channels used by services.notifications.dispatch
    registry = InMemoryConnectionRegistry(heartbeat_timeout=app.config["WS_HEARTBEAT_TIMEOUT_SECONDS"])
    app.extensions["connection_registry"] = registry
    app.extensions["push_sender"] = LoggingPushSender()
    if app.config.get("CONNECTION_SWEEP_ENABLED"):
        start_sweeper(registry, app.config["WS_SWEEP_INTERVAL_SECONDS"])

    @app.before_request
    def _load_user():
        load_current_user()

    app.before_request(csrf_protect)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_error_handlers(app)
    register_cli(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def _service_error(err):
        db.session.rollback()
        if err.status_code >= 500:
            logger.error("%s on %s %s: %s", err.code, request.method, request.path, err.message)
        return error_response(err.message, error=err.code, status_code=err.status_code, details=err.details)

    @app.errorhandler(HTTPException)
    def _http_error(err):
        return error_response(err.description, error=err.name.lower().replace(" ", "_"), status_code=err.code)

    @app.errorhandler(Exception)
    def _unhandled(err):
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error_response("Internal server error", error="server_error", status_code=500)


#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)
            db.session.commit()

        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("expire-promotions")
    def expire_promotions():
        """Mark paid promotions past their end date as EXPIRED."""
        click.echo(f"{expire_lapsed_promotions()} promotion(s) expired")

    @app.cli.command("cleanup-notifications")
    def cleanup_notifications():
        """Delete notifications past their expiry."""
        click.echo(f"{cleanup_expired_notifications()} notification(s) removed")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
