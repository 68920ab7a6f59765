from flask import Flask, request, jsonify
from flask_cors import CORS
import os
import logging

import click

from extensions import limiter
from app_config import Config
from auth_routes import auth_bp, verify_token
from errors import register_error_handlers
from models import db as sqlalchemy_db, User, Role
from socket_events import socketio
from routes import (
    jobs_bp, workers_bp, payments_bp, wallet_bp, admin_bp, categories_bp,
    chat_bp, notifications_bp, reviews_bp,
)
import catalog
import platform_settings

# ---------------------------------------------------------------------------
# Sentry error monitoring (optional -- only active when SENTRY_DSN is set)
# ---------------------------------------------------------------------------
_sentry_dsn = os.environ.get("SENTRY_DSN")
if _sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    sentry_sdk.init(
        dsn=_sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
    )

# ---------------------------------------------------------------------------
# Production startup checks
# ---------------------------------------------------------------------------
_startup_logger = logging.getLogger("taskhive.startup")

_CRITICAL_ENV_VARS = [
    "JWT_SECRET",
    "SECRET_KEY",
    "DATABASE_URL",
]

_RECOMMENDED_ENV_VARS = [
    "RAZORPAY_KEY_ID",
    "RAZORPAY_KEY_SECRET",
    "CORS_ORIGINS",
    "REDIS_URL",
]

_flask_env = os.environ.get("FLASK_ENV", "development")
_is_development = _flask_env == "development"
if _flask_env not in ("development", "testing"):
    _missing_critical = [v for v in _CRITICAL_ENV_VARS if not os.environ.get(v)]
    _missing_recommended = [v for v in _RECOMMENDED_ENV_VARS if not os.environ.get(v)]

    if _missing_critical:
        _startup_logger.critical(
            "MISSING CRITICAL ENV VARS (app may not work correctly): %s",
            ", ".join(_missing_critical),
        )
    if _missing_recommended:
        _startup_logger.warning(
            "Missing recommended env vars: %s",
            ", ".join(_missing_recommended),
        )
    if not _sentry_dsn:
        _startup_logger.warning(
            "SENTRY_DSN is not set -- error monitoring is disabled."
        )

# Writes that stay open while the platform is in maintenance mode.
_MAINTENANCE_EXEMPT_PATHS = ("/api/auth/login", "/api/auth/session", "/api/health")
_SAFE_METHODS = ("GET", "HEAD", "OPTIONS")


def _allowed_origins(app):
    origins = [o.strip() for o in app.config.get("CORS_ORIGINS", "*").split(",") if o.strip()]
    if "*" in origins:
        if not _is_development and not app.config.get("TESTING"):
            _startup_logger.critical(
                "CORS_ORIGINS is set to '*' in a non-development environment!"
            )
        return "*"
    return origins


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # -----------------------------------------------------------------------
    # Initialize extensions
    # -----------------------------------------------------------------------
    origins = _allowed_origins(app)
    CORS(app, resources={r"/api/*": {"origins": origins}})
    sqlalchemy_db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=origins,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "eventlet"),
    )
    limiter.init_app(app)
    register_error_handlers(app)

    # -----------------------------------------------------------------------
    # Register blueprints
    # -----------------------------------------------------------------------
    app.register_blueprint(auth_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(chat_bp)
    app.register_blueprint(workers_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(reviews_bp)

    # -----------------------------------------------------------------------
    # Maintenance mode: only admins may write
    # -----------------------------------------------------------------------
    @app.before_request
    def enforce_maintenance_mode():
        if request.method in _SAFE_METHODS or not request.path.startswith("/api/"):
            return None
        if request.path in _MAINTENANCE_EXEMPT_PATHS:
            return None
        if not platform_settings.get_settings().maintenance_mode:
            return None
        token = request.headers.get("Authorization", "").replace("Bearer ", "")
        user_id = verify_token(token) if token else None
        user = sqlalchemy_db.session.get(User, user_id) if user_id else None
        if user is not None and user.role == Role.ADMIN:
            return None
        return jsonify({
            "error": "The platform is under maintenance. Please try again later.",
            "code": "maintenance",
        }), 503

    # -----------------------------------------------------------------------
    # Security headers middleware
    # -----------------------------------------------------------------------
    @app.after_request
    def set_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        response.headers["Content-Security-Policy"] = "default-src 'none'"
        if not _is_development and not app.config.get("TESTING"):
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # -----------------------------------------------------------------------
    # Public endpoints
    # -----------------------------------------------------------------------
    @app.route("/api/health", methods=["GET"])
    @limiter.exempt
    def health_check():
        """Health check endpoint (exempt from rate limiting)"""
        return jsonify({"status": "healthy", "service": "TaskHive API"}), 200

    @app.route("/api/settings/public", methods=["GET"])
    def public_settings():
        """Settings clients need before login (maintenance banner, support line)."""
        settings = platform_settings.get_settings()
        return jsonify({
            "success": True,
            "settings": {
                "maintenance_mode": settings.maintenance_mode,
                "allow_registration": settings.allow_registration,
                "support_phone": settings.support_phone,
            },
        }), 200

    # -----------------------------------------------------------------------
    # Create tables and the settings singleton on startup
    # -----------------------------------------------------------------------
    with app.app_context():
        sqlalchemy_db.create_all()
        platform_settings.ensure_settings()

    # -----------------------------------------------------------------------
    # Flask CLI commands
    # -----------------------------------------------------------------------
    @app.cli.command("init-db")
    def cli_init_db():
        """Create all tables and the platform settings row."""
        sqlalchemy_db.create_all()
        platform_settings.ensure_settings()
        click.echo("Database initialised.")

    @app.cli.command("seed-categories")
    def cli_seed_categories():
        """Insert the default service categories that are missing."""
        added = catalog.seed_default_categories()
        click.echo("Added {} categor{}.".format(added, "y" if added == 1 else "ies"))

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.password_option()
    @click.option("--name", default="Admin")
    def cli_create_admin(email, password, name):
        """Create an admin account (admins cannot sign up over HTTP)."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise click.ClickException("Email already registered")
        admin = User(email=email, name=name, role=Role.ADMIN)
        admin.set_password(password)
        sqlalchemy_db.session.add(admin)
        sqlalchemy_db.session.commit()
        click.echo("Admin {} created.".format(admin.id))

    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    application = create_app()
    port = application.config.get("PORT", 8080)
    debug = os.environ.get("FLASK_ENV", "development") == "development"
    socketio.run(application, debug=debug, host="0.0.0.0", port=port)
