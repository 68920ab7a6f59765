"""
Wallet API routes for TaskHive workers: balance, history and withdrawals.
"""

from flask import Blueprint, request, jsonify

from auth_routes import require_role, current_user
from extensions import limiter
import ledger
from models import Role

wallet_bp = Blueprint("wallet", __name__, url_prefix="/api/wallet")


@wallet_bp.route("", methods=["GET"])
@require_role(Role.WORKER)
def get_wallet(user_id):
    """Balance summary plus the most recent transactions."""
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400

    summary = ledger.wallet_summary(user_id)
    transactions = ledger.list_transactions(user_id, limit=limit)
    return jsonify({
        "success": True,
        "wallet": summary,
        "transactions": [t.to_dict() for t in transactions],
    }), 200


@wallet_bp.route("/withdrawals", methods=["POST"])
@limiter.limit("5 per minute")
@require_role(Role.WORKER)
def request_withdrawal(user_id):
    """Body JSON: amount (float)"""
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        return jsonify({"error": "amount is required"}), 400

    txn = ledger.request_withdrawal(current_user(), data.get("amount"))
    return jsonify({
        "success": True,
        "transaction": txn.to_dict(),
        "balance": ledger.compute_balance(user_id),
    }), 201
