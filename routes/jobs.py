"""
Job API routes for TaskHive.
Customers post, cancel and dispute jobs; assigned workers drive them through
arrival, start (OTP) and completion. All state changes go through lifecycle.
"""

from datetime import datetime

from flask import Blueprint, request, jsonify

from auth_routes import require_auth, require_role, current_user
from extensions import limiter
import lifecycle
from models import Job, JobStatus, Role

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")


def _job_payload(job, user):
    return job.to_dict(include_otp=(user.id == job.customer_id))


def _parse_scheduled_time(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return "invalid"


@jobs_bp.route("", methods=["POST"])
@require_role(Role.CUSTOMER)
def create_job(user_id):
    """
    Post a new job.
    Body JSON: category_id, location_address, description?, location_lat?,
    location_lng?, scheduled_time? (ISO-8601), images? (storage paths)
    """
    data = request.get_json(silent=True) or {}
    if not data.get("category_id"):
        return jsonify({"error": "category_id is required"}), 400

    scheduled_time = _parse_scheduled_time(data.get("scheduled_time"))
    if scheduled_time == "invalid":
        return jsonify({"error": "scheduled_time must be an ISO-8601 timestamp"}), 400

    job = lifecycle.create_job(
        current_user(),
        data.get("category_id"),
        data.get("location_address"),
        description=data.get("description"),
        location_lat=data.get("location_lat"),
        location_lng=data.get("location_lng"),
        scheduled_time=scheduled_time,
        images=data.get("images"),
    )
    return jsonify({"success": True, "job": _job_payload(job, current_user())}), 201


@jobs_bp.route("/active", methods=["GET"])
@require_auth
def active_job(user_id):
    """The caller's current job: newest non-terminal job as customer or worker."""
    user = current_user()
    column = Job.worker_id if user.role == Role.WORKER else Job.customer_id
    job = (
        Job.query
        .filter(column == user_id, Job.status.notin_(JobStatus.TERMINAL))
        .order_by(Job.created_at.desc())
        .first()
    )
    return jsonify({"success": True, "job": _job_payload(job, user) if job else None}), 200


@jobs_bp.route("/history", methods=["GET"])
@require_auth
def job_history(user_id):
    """Completed and cancelled jobs for the caller, newest first."""
    user = current_user()
    column = Job.worker_id if user.role == Role.WORKER else Job.customer_id
    jobs = (
        Job.query
        .filter(column == user_id, Job.status.in_(JobStatus.TERMINAL))
        .order_by(Job.created_at.desc())
        .all()
    )
    return jsonify({"success": True, "jobs": [_job_payload(j, user) for j in jobs]}), 200


@jobs_bp.route("/<job_id>", methods=["GET"])
@require_auth
def get_job(user_id, job_id):
    """Job detail. The start code is only ever returned to the customer."""
    job = lifecycle.get_job(job_id)
    lifecycle.ensure_can_view(job, current_user())
    payload = _job_payload(job, current_user())
    if job.worker is not None:
        payload["worker"] = job.worker.to_dict()
    if job.customer is not None and user_id != job.customer_id:
        payload["customer"] = {"id": job.customer.id, "name": job.customer.name, "phone": job.customer.phone}
    return jsonify({"success": True, "job": payload}), 200


@jobs_bp.route("/<job_id>/accept", methods=["POST"])
@require_role(Role.WORKER)
def accept_job(user_id, job_id):
    job = lifecycle.accept_job(job_id, current_user())
    return jsonify({"success": True, "job": _job_payload(job, current_user())}), 200


@jobs_bp.route("/<job_id>/arrive", methods=["POST"])
@require_role(Role.WORKER)
def mark_arrived(user_id, job_id):
    job = lifecycle.mark_arrived(job_id, current_user())
    return jsonify({"success": True, "job": _job_payload(job, current_user())}), 200


@jobs_bp.route("/<job_id>/start", methods=["POST"])
@limiter.limit("10 per minute")
@require_role(Role.WORKER)
def start_job(user_id, job_id):
    """Body JSON: otp (the customer's 4-digit start code)"""
    data = request.get_json(silent=True) or {}
    if not data.get("otp"):
        return jsonify({"error": "otp is required"}), 400
    job = lifecycle.start_job(job_id, current_user(), data.get("otp"))
    return jsonify({"success": True, "job": _job_payload(job, current_user())}), 200


@jobs_bp.route("/<job_id>/complete", methods=["POST"])
@require_role(Role.WORKER)
def complete_work(user_id, job_id):
    """Body JSON: amount (final amount due, including materials)"""
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        return jsonify({"error": "amount is required"}), 400
    job = lifecycle.complete_work(job_id, current_user(), data.get("amount"))
    return jsonify({"success": True, "job": _job_payload(job, current_user())}), 200


@jobs_bp.route("/<job_id>/cancel", methods=["POST"])
@require_role(Role.CUSTOMER)
def cancel_job(user_id, job_id):
    job = lifecycle.cancel_job(job_id, current_user())
    return jsonify({"success": True, "job": _job_payload(job, current_user())}), 200


@jobs_bp.route("/<job_id>/report", methods=["POST"])
@require_role(Role.CUSTOMER)
def report_issue(user_id, job_id):
    """Body JSON: reason"""
    data = request.get_json(silent=True) or {}
    job = lifecycle.report_issue(job_id, current_user(), data.get("reason"))
    return jsonify({"success": True, "job": _job_payload(job, current_user())}), 200
