"""
Customer Reviews API routes for TaskHive.
Customers rate the worker of a completed job, once per job. Worker ratings
are aggregated from these rows on read.
"""

from flask import Blueprint, request, jsonify
from sqlalchemy.exc import IntegrityError

from models import db, Job, JobStatus, Review, Role
from auth_routes import require_role, require_auth

reviews_bp = Blueprint("reviews", __name__, url_prefix="/api/reviews")


# ---------------------------------------------------------------------------
# POST /api/reviews - Create a review
# ---------------------------------------------------------------------------
@reviews_bp.route("", methods=["POST"])
@require_role(Role.CUSTOMER)
def create_review(user_id):
    """Create a review for a completed job.

    Body JSON:
        job_id: str (required)
        rating: int 1-5 (required)
        comment: str (optional)
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Request body is required"}), 400

    job_id = data.get("job_id")
    rating = data.get("rating")
    comment = data.get("comment", "").strip() if data.get("comment") else None

    if not job_id:
        return jsonify({"error": "job_id is required"}), 400
    if rating is None:
        return jsonify({"error": "rating is required"}), 400
    try:
        rating = int(rating)
    except (TypeError, ValueError):
        return jsonify({"error": "rating must be an integer"}), 400
    if not (1 <= rating <= 5):
        return jsonify({"error": "rating must be between 1 and 5"}), 400

    job = db.session.get(Job, job_id)
    if not job:
        return jsonify({"error": "Job not found"}), 404
    if job.customer_id != user_id:
        return jsonify({"error": "Not authorized"}), 403
    if job.status != JobStatus.COMPLETED:
        return jsonify({"error": "Can only review completed jobs"}), 400
    if not job.worker_id:
        return jsonify({"error": "No worker assigned to this job"}), 400
    if Review.query.filter_by(job_id=job_id).first():
        return jsonify({"error": "This job has already been reviewed"}), 409

    review = Review(
        job_id=job_id,
        reviewer_id=user_id,
        reviewee_id=job.worker_id,
        rating=rating,
        comment=comment,
    )
    db.session.add(review)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "This job has already been reviewed"}), 409

    return jsonify({"success": True, "review": review.to_dict()}), 201


# ---------------------------------------------------------------------------
# GET /api/reviews/job/<job_id> - Get review for a specific job
# ---------------------------------------------------------------------------
@reviews_bp.route("/job/<job_id>", methods=["GET"])
@require_auth
def get_job_review(user_id, job_id):
    review = Review.query.filter_by(job_id=job_id).first()
    return jsonify({"success": True, "review": review.to_dict() if review else None}), 200
