"""
Admin API routes for TaskHive.
Protected by role-based access (admin only).
"""

import logging

from flask import Blueprint, request, jsonify
from sqlalchemy import func

from models import (
    db, User, Job, JobStatus, Role, AccountStatus, WorkerStatus, TransactionStatus,
)
from auth_routes import require_role
import ledger
import lifecycle
import platform_settings

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

logger = logging.getLogger(__name__)

require_admin = require_role(Role.ADMIN)

ADMIN_ACTIVE_STATUSES = (JobStatus.ACCEPTED, JobStatus.ARRIVED, JobStatus.IN_PROGRESS, JobStatus.DISPUTED)


def platform_stats():
    """GMV is the sum of completed job amounts; revenue is GMV times the commission rate."""
    gmv = (
        db.session.query(func.coalesce(func.sum(Job.amount), 0.0))
        .filter(Job.status == JobStatus.COMPLETED)
        .scalar()
    )
    gmv = round(float(gmv or 0.0), 2)
    rate = platform_settings.get_settings().commission_rate
    return {
        "total_gmv": gmv,
        "total_revenue": round(gmv * rate / 100.0, 2),
        "commission_rate": rate,
        "total_jobs": Job.query.count(),
        "completed_jobs": Job.query.filter_by(status=JobStatus.COMPLETED).count(),
        "open_disputes": Job.query.filter_by(status=JobStatus.DISPUTED).count(),
        "total_users": User.query.count(),
        "verified_workers": User.query.filter_by(role=Role.WORKER, worker_status=WorkerStatus.VERIFIED).count(),
        "pending_workers": User.query.filter_by(role=Role.WORKER, worker_status=WorkerStatus.PENDING_REVIEW).count(),
    }


@admin_bp.route("/stats", methods=["GET"])
@require_admin
def stats(user_id):
    return jsonify({"success": True, "stats": platform_stats()}), 200


# ---------------------------------------------------------------------------
# Users & worker verification
# ---------------------------------------------------------------------------
@admin_bp.route("/users", methods=["GET"])
@require_admin
def list_users(user_id):
    """All profiles, newest first. Optional ?role= filter."""
    query = User.query
    role = request.args.get("role")
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.created_at.desc()).all()
    return jsonify({"success": True, "users": [u.to_dict(include_private=True) for u in users]}), 200


@admin_bp.route("/users/<target_id>/suspension", methods=["POST"])
@require_admin
def set_suspension(user_id, target_id):
    """Body JSON: suspended (bool). Unsuspended workers get their previous worker status back."""
    data = request.get_json(silent=True) or {}
    if "suspended" not in data:
        return jsonify({"error": "suspended is required"}), 400
    if target_id == user_id:
        return jsonify({"error": "You cannot suspend yourself"}), 400

    target = db.session.get(User, target_id)
    if not target:
        return jsonify({"error": "User not found"}), 404

    if data["suspended"]:
        target.status = AccountStatus.SUSPENDED
        if target.role == Role.WORKER:
            if target.worker_status != WorkerStatus.SUSPENDED:
                target.suspended_worker_status = target.worker_status
            target.worker_status = WorkerStatus.SUSPENDED
            target.is_online = False
    else:
        target.status = AccountStatus.ACTIVE
        if target.role == Role.WORKER and target.worker_status == WorkerStatus.SUSPENDED:
            target.worker_status = target.suspended_worker_status or WorkerStatus.VERIFIED
            target.suspended_worker_status = None
    db.session.commit()
    logger.info("Admin %s set suspended=%s on %s", user_id, bool(data["suspended"]), target_id)
    return jsonify({"success": True, "user": target.to_dict(include_private=True)}), 200


@admin_bp.route("/workers/pending", methods=["GET"])
@require_admin
def pending_workers(user_id):
    workers = (
        User.query
        .filter_by(role=Role.WORKER, worker_status=WorkerStatus.PENDING_REVIEW)
        .order_by(User.updated_at.asc())
        .all()
    )
    return jsonify({"success": True, "workers": [w.to_dict(include_private=True) for w in workers]}), 200


def _review_worker(worker_id, new_status):
    worker = db.session.get(User, worker_id)
    if not worker or worker.role != Role.WORKER:
        return None, (jsonify({"error": "Worker not found"}), 404)
    if worker.worker_status != WorkerStatus.PENDING_REVIEW:
        return None, (jsonify({
            "error": "Worker is not pending review",
            "code": "invalid_transition",
        }), 409)
    worker.worker_status = new_status
    db.session.commit()
    return worker, None


@admin_bp.route("/workers/<worker_id>/verify", methods=["POST"])
@require_admin
def verify_worker(user_id, worker_id):
    worker, error = _review_worker(worker_id, WorkerStatus.VERIFIED)
    if error:
        return error
    logger.info("Worker %s verified by %s", worker_id, user_id)
    return jsonify({"success": True, "user": worker.to_dict(include_private=True)}), 200


@admin_bp.route("/workers/<worker_id>/reject", methods=["POST"])
@require_admin
def reject_worker(user_id, worker_id):
    """Send the worker back to unverified so they can resubmit documents."""
    worker, error = _review_worker(worker_id, WorkerStatus.UNVERIFIED)
    if error:
        return error
    logger.info("Worker %s rejected by %s", worker_id, user_id)
    return jsonify({"success": True, "user": worker.to_dict(include_private=True)}), 200


# ---------------------------------------------------------------------------
# Jobs & disputes
# ---------------------------------------------------------------------------
@admin_bp.route("/jobs/active", methods=["GET"])
@require_admin
def active_jobs(user_id):
    jobs = (
        Job.query
        .filter(Job.status.in_(ADMIN_ACTIVE_STATUSES))
        .order_by(Job.created_at.desc())
        .all()
    )
    return jsonify({"success": True, "jobs": [j.to_dict() for j in jobs]}), 200


@admin_bp.route("/jobs/<job_id>/resolve", methods=["POST"])
@require_admin
def resolve_dispute(user_id, job_id):
    """Body JSON: resolution ("PAY" | "REFUND"), amount (optional, PAY only)"""
    data = request.get_json(silent=True) or {}
    if not data.get("resolution"):
        return jsonify({"error": "resolution is required"}), 400
    job = lifecycle.resolve_dispute(
        job_id, db.session.get(User, user_id), data.get("resolution"), amount=data.get("amount"),
    )
    return jsonify({"success": True, "job": job.to_dict()}), 200


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------
@admin_bp.route("/withdrawals", methods=["GET"])
@require_admin
def list_withdrawals(user_id):
    """All withdrawal requests, newest first. Optional ?status= filter."""
    withdrawals = ledger.list_withdrawals(status=request.args.get("status"))
    result = []
    for txn in withdrawals:
        data = txn.to_dict()
        worker = db.session.get(User, txn.worker_id)
        data["worker_name"] = worker.name if worker else None
        result.append(data)
    return jsonify({"success": True, "withdrawals": result}), 200


@admin_bp.route("/withdrawals/<transaction_id>/settle", methods=["POST"])
@require_admin
def settle_withdrawal(user_id, transaction_id):
    """Body JSON: status ("COMPLETED" | "FAILED")"""
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").upper()
    if status not in (TransactionStatus.COMPLETED, TransactionStatus.FAILED):
        return jsonify({"error": "status must be COMPLETED or FAILED"}), 400
    txn = ledger.settle_withdrawal(transaction_id, status)
    return jsonify({"success": True, "transaction": txn.to_dict()}), 200


# ---------------------------------------------------------------------------
# Platform settings
# ---------------------------------------------------------------------------
@admin_bp.route("/settings", methods=["GET"])
@require_admin
def get_settings(user_id):
    return jsonify({"success": True, "settings": platform_settings.get_settings().to_dict()}), 200


@admin_bp.route("/settings", methods=["PUT"])
@require_admin
def update_settings(user_id):
    """Body JSON: maintenance_mode?, allow_registration?, commission_rate?, support_phone?"""
    data = request.get_json(silent=True) or {}
    settings = platform_settings.update_settings(data)
    return jsonify({"success": True, "settings": settings.to_dict()}), 200
