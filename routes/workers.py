"""
Worker API routes for TaskHive.
Handles availability, location, skills/profile, verification submission and
the open-job feed.
"""

import logging

from flask import Blueprint, request, jsonify

from auth_routes import require_role, require_auth, current_user
import matching
from models import db, User, Review, Role, WorkerStatus, ServiceCategory

workers_bp = Blueprint("workers", __name__, url_prefix="/api/workers")

logger = logging.getLogger(__name__)

MAX_SERVICE_RADIUS_KM = 100.0


@workers_bp.route("/feed", methods=["GET"])
@require_role(Role.WORKER)
def job_feed(user_id):
    """
    Open jobs for the calling worker, nearest first.
    Query params: lat, lng (optional; defaults to the last known position)
    """
    feed = matching.available_jobs(
        current_user(), lat=request.args.get("lat"), lng=request.args.get("lng"),
    )
    jobs = []
    for job, distance in feed:
        data = job.to_dict()
        data["distance_km"] = distance
        jobs.append(data)
    return jsonify({"success": True, "jobs": jobs, "count": len(jobs)}), 200


@workers_bp.route("/me/availability", methods=["PUT"])
@require_role(Role.WORKER)
def update_availability(user_id):
    """Toggle online/offline. Body JSON: is_online (bool)"""
    data = request.get_json(silent=True) or {}
    if "is_online" not in data:
        return jsonify({"error": "is_online is required"}), 400

    worker = current_user()
    if data["is_online"] and worker.worker_status != WorkerStatus.VERIFIED:
        return jsonify({"error": "Only verified workers can go online", "code": "forbidden"}), 403
    worker.is_online = bool(data["is_online"])
    db.session.commit()
    return jsonify({"success": True, "is_online": worker.is_online}), 200


@workers_bp.route("/me/location", methods=["PUT"])
@require_role(Role.WORKER)
def update_location(user_id):
    """Body JSON: lat (float), lng (float)"""
    data = request.get_json(silent=True) or {}
    lat, lng = matching.parse_position(data.get("lat"), data.get("lng"))
    if lat is None:
        return jsonify({"error": "lat and lng are required numbers"}), 400

    worker = current_user()
    worker.current_lat = lat
    worker.current_lng = lng
    db.session.commit()
    return jsonify({"success": True, "lat": lat, "lng": lng}), 200


@workers_bp.route("/me/profile", methods=["PUT"])
@require_role(Role.WORKER)
def update_worker_profile(user_id):
    """
    Update worker-only profile fields.
    Body JSON: skills (category ids), bio, experience_years, service_radius_km
    """
    data = request.get_json(silent=True) or {}
    worker = current_user()

    if "skills" in data:
        skills = data["skills"] or []
        if not isinstance(skills, list):
            return jsonify({"error": "skills must be a list of category ids"}), 400
        skills = list(dict.fromkeys(str(s) for s in skills))
        known = {
            c.id for c in ServiceCategory.query.filter(ServiceCategory.id.in_(skills)).all()
        } if skills else set()
        unknown = [s for s in skills if s not in known]
        if unknown:
            return jsonify({"error": "Unknown categories: {}".format(", ".join(unknown))}), 400
        worker.skills = skills

    if "bio" in data:
        worker.bio = (data["bio"] or "").strip() or None

    if "experience_years" in data:
        try:
            years = int(data["experience_years"])
        except (TypeError, ValueError):
            return jsonify({"error": "experience_years must be an integer"}), 400
        if years < 0:
            return jsonify({"error": "experience_years cannot be negative"}), 400
        worker.experience_years = years

    if "service_radius_km" in data:
        try:
            radius = float(data["service_radius_km"])
        except (TypeError, ValueError):
            return jsonify({"error": "service_radius_km must be a number"}), 400
        if radius <= 0 or radius > MAX_SERVICE_RADIUS_KM:
            return jsonify({"error": "service_radius_km must be between 0 and {}".format(MAX_SERVICE_RADIUS_KM)}), 400
        worker.service_radius_km = radius

    db.session.commit()
    return jsonify({"success": True, "user": worker.to_dict(include_private=True)}), 200


@workers_bp.route("/me/verification", methods=["POST"])
@require_role(Role.WORKER)
def submit_verification(user_id):
    """
    Submit identity documents for review.
    Body JSON: documents (list of storage paths)
    """
    data = request.get_json(silent=True) or {}
    documents = data.get("documents")
    if not documents or not isinstance(documents, list):
        return jsonify({"error": "documents must be a non-empty list of storage paths"}), 400

    worker = current_user()
    if worker.worker_status == WorkerStatus.VERIFIED:
        return jsonify({"error": "Worker is already verified", "code": "invalid_transition"}), 409
    if worker.worker_status == WorkerStatus.SUSPENDED:
        return jsonify({"error": "Suspended workers cannot submit verification", "code": "forbidden"}), 403

    worker.verification_docs = [str(d) for d in documents]
    worker.worker_status = WorkerStatus.PENDING_REVIEW
    db.session.commit()
    logger.info("Worker %s submitted %d verification document(s)", user_id, len(documents))
    return jsonify({"success": True, "user": worker.to_dict(include_private=True)}), 200


@workers_bp.route("/<worker_id>", methods=["GET"])
@require_auth
def public_profile(user_id, worker_id):
    """Public worker profile with derived rating and recent reviews."""
    worker = db.session.get(User, worker_id)
    if not worker or worker.role != Role.WORKER:
        return jsonify({"error": "Worker not found"}), 404

    reviews = (
        Review.query
        .filter_by(reviewee_id=worker_id)
        .order_by(Review.created_at.desc())
        .limit(20)
        .all()
    )
    return jsonify({
        "success": True,
        "worker": worker.to_dict(),
        "reviews": [r.to_dict() for r in reviews],
    }), 200
