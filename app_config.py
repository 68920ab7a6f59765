import os
import secrets
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _require_in_production(var_name, default):
    """Return env var value. In production, warn loudly if still using default."""
    value = os.environ.get(var_name, "")
    if value:
        return value
    env = os.environ.get("FLASK_ENV", "development")
    if env != "development" and default:
        logger.warning(
            "%s is using an insecure default. Set it via environment variable!", var_name
        )
    return default


def _database_url():
    url = os.environ.get("DATABASE_URL", "")
    if not url:
        # Local development fallback
        return "sqlite:///taskhive.db"
    # Fix postgres:// to postgresql:// for SQLAlchemy 2.x
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    """Application configuration"""

    # Flask
    SECRET_KEY = _require_in_production(
        "SECRET_KEY", "dev-only-" + secrets.token_hex(16)
    )
    DEBUG = os.environ.get("FLASK_ENV", "development") == "development"
    TESTING = False
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB max request body

    # JWT Authentication
    JWT_SECRET = _require_in_production(
        "JWT_SECRET", "dev-only-" + secrets.token_hex(32)
    )
    JWT_EXPIRES_DAYS = int(os.environ.get("JWT_EXPIRES_DAYS", "30"))

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Razorpay
    RAZORPAY_KEY_ID = os.environ.get("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET = os.environ.get("RAZORPAY_KEY_SECRET", "")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "INR")

    # Rate limiting (Flask-Limiter reads RATELIMIT_* keys)
    RATELIMIT_ENABLED = True

    # Socket.IO (eventlet in production, threading works for local runs)
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "eventlet")

    # Default worker service radius when the profile does not set one
    DEFAULT_SERVICE_RADIUS_KM = float(os.environ.get("DEFAULT_SERVICE_RADIUS_KM", "10"))

    # Server
    PORT = int(os.environ.get("PORT", "8080"))


class TestingConfig(Config):
    """Testing configuration with isolated database and safe defaults"""

    TESTING = True
    DEBUG = False

    # Use in-memory SQLite for fast tests
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

    SECRET_KEY = "test-secret-key"
    JWT_SECRET = "test-jwt-secret"

    RAZORPAY_KEY_ID = ""
    RAZORPAY_KEY_SECRET = "test_razorpay_secret"

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False

    SOCKETIO_ASYNC_MODE = "threading"

    CORS_ORIGINS = "http://localhost:5173,http://localhost:3000"
