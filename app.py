import click
from flask import Flask, g, jsonify, request
from flask_migrate import Migrate

from config import Config
from routes import health_bp, communities_bp, auth_bp, users_bp, slots_bp, bookings_bp, admin_bp, audit_bp

from models import db
from models.community import Community, COMMUNITY_ACTIVE, COMMUNITY_INACTIVE
from models.user import User, ROLE_ADMIN
from security.identity import load_current_identity
from security.session import issue_session
from security.tenancy import bind_scope, clear_scope, is_valid_code, normalize_code, resolve
from services.store import CONFIRMATION_MODES, expire_slots
from utils.audit import log_event
from utils.errors import (
    Forbidden,
    NotFound,
    ParkingError,
    UnknownTenant,
    CROSS_TENANT,
    CROSS_TENANT_WRITE,
)

ACTIVE_BOOKING_SCOPES = ("tenant", "global")


def _engine_options(uri: str, timeout) -> dict:
    # every store round-trip is bounded by STORE_TIMEOUT_SECONDS
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout, "check_same_thread": False}}
    if uri.startswith("postgresql"):
        return {
            "connect_args": {"options": f"-c statement_timeout={int(timeout * 1000)}"},
            "pool_pre_ping": True,
        }
    return {}


def _check_policy(config):
    mode = config.get("BOOKING_CONFIRMATION_MODE")
    if mode not in CONFIRMATION_MODES:
        raise RuntimeError(
            "BOOKING_CONFIRMATION_MODE must be set to one of: " + ", ".join(CONFIRMATION_MODES)
        )
    if config.get("ONE_ACTIVE_BOOKING_SCOPE") not in ACTIVE_BOOKING_SCOPES:
        raise RuntimeError(
            "ONE_ACTIVE_BOOKING_SCOPE must be one of: " + ", ".join(ACTIVE_BOOKING_SCOPES)
        )


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    _check_policy(app.config)
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        _engine_options(app.config["SQLALCHEMY_DATABASE_URI"], app.config["STORE_TIMEOUT_SECONDS"]),
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(communities_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(slots_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _load_identity():
        load_current_identity()

        actor = g.auth
        if actor is None:
            return None
        try:
            bind_scope(resolve(actor.tenant_code))
        except UnknownTenant:
            # the store resolves again and fails the request itself
            app.logger.warning("user %s belongs to inactive community %s", actor.user_id, actor.tenant_code)
        return None

    @app.teardown_request
    def _unbind_scope(exc):
        clear_scope()

    @app.errorhandler(ParkingError)
    def _parking_error(exc):
        if isinstance(exc, Forbidden):
            actor = getattr(g, "auth", None)
            log_event(
                "AUTH_FORBIDDEN",
                user_id=actor.user_id if actor else None,
                tenant_code=actor.tenant_code if actor else None,
                metadata={"path": request.path, "method": request.method, "reason": exc.reason},
            )
            # never reveal that the entity exists in another community
            if exc.reason in (CROSS_TENANT, CROSS_TENANT_WRITE):
                exc = NotFound()
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("create-community")
    @click.argument("code")
    @click.argument("name")
    @click.option("--display-name", default=None, help="Name shown to residents (defaults to NAME).")
    @click.option("--address", default=None)
    def create_community(code, name, display_name, address):
        """Create (or reactivate) a community."""
        code = normalize_code(code)
        if not is_valid_code(code):
            raise click.BadParameter("code must be 2-4 letters", param_hint="CODE")

        community = db.session.get(Community, code)
        if community:
            community.status = COMMUNITY_ACTIVE
            db.session.commit()
            click.echo(f"{code} already exists, marked active")
            return

        db.session.add(Community(
            code=code,
            name=name,
            display_name=display_name or name,
            address=address,
            status=COMMUNITY_ACTIVE,
        ))
        db.session.commit()
        click.echo(f"{code} created")

    @app.cli.command("deactivate-community")
    @click.argument("code")
    def deactivate_community(code):
        """Deactivate a community. Communities are never deleted."""
        community = db.session.get(Community, normalize_code(code))
        if not community:
            raise click.ClickException("Community not found")
        community.status = COMMUNITY_INACTIVE
        db.session.commit()
        click.echo(f"{community.code} deactivated")

    @app.cli.command("make-admin")
    @click.argument("subject_id")
    def make_admin(subject_id):
        """Promote a registered user to administrator of their community (bootstrap)."""
        user = db.session.get(User, subject_id)
        if not user:
            raise click.ClickException("User not found")

        if user.role != ROLE_ADMIN:
            user.role = ROLE_ADMIN
            db.session.commit()

        click.echo(f"{user.id} is administrator of {user.tenant_code}")

    @app.cli.command("issue-session")
    @click.argument("subject_id")
    def issue_session_cmd(subject_id):
        """Print a fresh session token for SUBJECT_ID (development identity provider)."""
        click.echo(issue_session(subject_id))

    @app.cli.command("expire-slots")
    def expire_slots_cmd():
        """Mark slots whose availability window has lapsed as expired."""
        count = expire_slots()
        click.echo(f"{count} slot(s) expired")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
