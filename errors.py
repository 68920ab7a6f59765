"""
Domain errors for TaskHive.

Every error carries an HTTP status and a stable machine-readable ``code`` so
callers can branch on the kind of failure (a lost accept race vs. a bad OTP)
instead of parsing messages. ``register_error_handlers`` renders them as
``{"error": ..., "code": ...}`` JSON.
"""

import logging

from flask import jsonify

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    code = "error"
    default_message = "Request could not be completed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(MarketplaceError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class InvalidOTP(ValidationError):
    code = "invalid_otp"
    default_message = "Invalid OTP"


class InsufficientBalance(ValidationError):
    code = "insufficient_balance"
    default_message = "Withdrawal amount exceeds available balance"


class NotAuthorized(MarketplaceError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to perform this action"


class AccountSuspended(NotAuthorized):
    code = "account_suspended"
    default_message = "This account has been suspended"


class NotFound(MarketplaceError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class InvalidTransition(MarketplaceError):
    status_code = 409
    code = "invalid_transition"
    default_message = "This action is not allowed in the job's current status"


class AlreadyAccepted(InvalidTransition):
    code = "already_accepted"
    default_message = "This job has already been accepted by another worker."


class InvalidSignature(MarketplaceError):
    status_code = 400
    code = "invalid_signature"
    default_message = "Invalid Signature"


class PaymentGatewayError(MarketplaceError):
    status_code = 502
    code = "payment_gateway_error"
    default_message = "Payment gateway is unavailable"


def register_error_handlers(app):
    """Attach JSON renderers for domain errors to the Flask app."""

    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(err):
        if err.status_code >= 500:
            logger.error("%s: %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"error": "Not found", "code": "not_found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "code": "method_not_allowed"}), 405

    @app.errorhandler(429)
    def ratelimit_handler(e):
        # Retry-After header is set by Flask-Limiter; read it back.
        retry_after = e.get_headers().get("Retry-After") if hasattr(e, "get_headers") else None
        retry_after_seconds = int(retry_after) if retry_after else 60
        return jsonify({
            "error": "Too many requests. Please try again later.",
            "code": "rate_limited",
            "retry_after": retry_after_seconds,
        }), 429
