"""
In-app notification routes: list, mark one read, mark all read.
"""

from flask import Blueprint, request, jsonify

from auth_routes import require_auth
from models import db, Notification

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.route("", methods=["GET"])
@require_auth
def list_notifications(user_id):
    """Newest first. ?unread=1 limits to unread ones."""
    query = Notification.query.filter_by(user_id=user_id)
    if request.args.get("unread") in ("1", "true"):
        query = query.filter(Notification.is_read.is_(False))
    items = query.order_by(Notification.created_at.desc()).limit(100).all()
    unread = Notification.query.filter_by(user_id=user_id, is_read=False).count()
    return jsonify({
        "success": True,
        "notifications": [n.to_dict() for n in items],
        "unread_count": unread,
    }), 200


@notifications_bp.route("/<notification_id>/read", methods=["POST"])
@require_auth
def mark_read(user_id, notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        return jsonify({"error": "Notification not found"}), 404
    notification.is_read = True
    db.session.commit()
    return jsonify({"success": True, "notification": notification.to_dict()}), 200


@notifications_bp.route("/read-all", methods=["POST"])
@require_auth
def mark_all_read(user_id):
    updated = (
        Notification.query
        .filter_by(user_id=user_id, is_read=False)
        .update({"is_read": True}, synchronize_session=False)
    )
    db.session.commit()
    return jsonify({"success": True, "updated": updated}), 200
