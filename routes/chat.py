"""
Chat API routes for messaging between a customer and the assigned worker on a job.
"""

from flask import Blueprint, request, jsonify
from sqlalchemy import and_, or_

from models import db, Job, Message
from auth_routes import require_auth
from socket_events import broadcast_message

chat_bp = Blueprint("chat", __name__, url_prefix="/api/jobs")

MAX_MESSAGE_LENGTH = 2000


def _is_participant(user_id, job):
    """Only the job's customer and its assigned worker may chat."""
    return user_id == job.customer_id or (job.worker_id is not None and user_id == job.worker_id)


@chat_bp.route("/<job_id>/messages", methods=["GET"])
@require_auth
def get_messages(user_id, job_id):
    """
    Get chat messages for a job, oldest first.
    Supports ?after=<message_id> to fetch only newer messages.
    """
    job = db.session.get(Job, job_id)
    if not job:
        return jsonify({"error": "Job not found"}), 404
    if not _is_participant(user_id, job):
        return jsonify({"error": "You do not have access to this job's chat"}), 403

    query = Message.query.filter_by(job_id=job_id)
    after = request.args.get("after")
    if after:
        cursor_msg = db.session.get(Message, after)
        if cursor_msg:
            # Same-timestamp messages are ordered by id, matching the sort below
            query = query.filter(or_(
                Message.created_at > cursor_msg.created_at,
                and_(Message.created_at == cursor_msg.created_at, Message.id > cursor_msg.id),
            ))

    messages = query.order_by(Message.created_at.asc(), Message.id.asc()).all()
    return jsonify({"success": True, "messages": [m.to_dict() for m in messages]}), 200


@chat_bp.route("/<job_id>/messages", methods=["POST"])
@require_auth
def send_message(user_id, job_id):
    """
    Send a chat message on a job.
    Body: { "text": "..." }
    """
    job = db.session.get(Job, job_id)
    if not job:
        return jsonify({"error": "Job not found"}), 404
    if not _is_participant(user_id, job):
        return jsonify({"error": "You do not have access to this job's chat"}), 403

    data = request.get_json(silent=True) or {}
    text = (data.get("text") or data.get("message") or "").strip()
    if not text:
        return jsonify({"error": "Message is required"}), 400
    if len(text) > MAX_MESSAGE_LENGTH:
        return jsonify({"error": "Message must be {} characters or fewer".format(MAX_MESSAGE_LENGTH)}), 400

    msg = Message(job_id=job_id, sender_id=user_id, text=text)
    db.session.add(msg)
    db.session.commit()

    broadcast_message(job_id, msg.id)
    return jsonify({"success": True, "message": msg.to_dict()}), 201
