"""
Payment API routes for TaskHive.
Razorpay checkout: customer opens an order for a job awaiting payment, pays
through the checkout widget, and posts the signed response back for
verification. Settlement logic lives in settlement.py.
"""

import logging

from flask import Blueprint, request, jsonify

from auth_routes import require_role, current_user
from extensions import limiter
from models import Role
import settlement

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")

logger = logging.getLogger(__name__)


@payments_bp.route("/orders", methods=["POST"])
@limiter.limit("10 per minute")
@require_role(Role.CUSTOMER)
def create_order(user_id):
    """
    Create a Razorpay order for a job.
    Body JSON: job_id (str), amount (float, optional; must match the amount due)
    """
    data = request.get_json(silent=True) or {}
    job_id = data.get("job_id")
    if not job_id:
        return jsonify({"error": "job_id is required"}), 400

    order = settlement.create_order(job_id, current_user(), amount=data.get("amount"))
    return jsonify({"success": True, "order": order}), 201


@payments_bp.route("/verify", methods=["POST"])
@limiter.limit("10 per minute")
@require_role(Role.CUSTOMER)
def verify_payment(user_id):
    """
    Verify a Razorpay checkout response and settle the job.
    Body JSON: razorpay_order_id, razorpay_payment_id, razorpay_signature,
    job_id?, worker_id?, amount?
    """
    data = request.get_json(silent=True) or {}
    order_id = data.get("razorpay_order_id") or data.get("order_id")
    payment_id = data.get("razorpay_payment_id") or data.get("payment_id")
    signature = data.get("razorpay_signature") or data.get("signature")
    if not order_id or not payment_id or not signature:
        return jsonify({"error": "razorpay_order_id, razorpay_payment_id and razorpay_signature are required"}), 400

    job, txn = settlement.verify_payment(
        order_id, payment_id, signature,
        job_id=data.get("job_id"),
        worker_id=data.get("worker_id"),
        amount=data.get("amount"),
        customer=current_user(),
    )
    return jsonify({
        "success": True,
        "job": job.to_dict(include_otp=(job.customer_id == user_id)),
        "transaction_id": txn.id,
    }), 200
