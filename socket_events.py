"""
Socket.IO event handlers for TaskHive real-time features.
- Room membership (job, personal, worker feed, admin)
- Job status fan-out
- New / taken job alerts on the worker feed

Payloads carry ids and statuses only. Clients treat every event as a cue to
re-fetch over HTTP; nothing here is authoritative.
"""

import logging

from flask_socketio import SocketIO, emit, join_room, leave_room
from flask import request

from models import db, Job, User, Role, WorkerStatus

logger = logging.getLogger(__name__)

socketio = SocketIO()

WORKER_FEED_ROOM = "workers:feed"
ADMIN_ROOM = "admin"


def job_room(job_id):
    return "job:{}".format(job_id)


def user_room(user_id):
    return "user:{}".format(user_id)


def _authenticate(data):
    from auth_routes import verify_token

    user_id = verify_token((data or {}).get("token"))
    if not user_id:
        return None
    user = db.session.get(User, user_id)
    if user is None or user.is_suspended:
        return None
    return user


def _may_join(user, room):
    if room == user_room(user.id):
        return True
    if room == ADMIN_ROOM:
        return user.role == Role.ADMIN
    if room == WORKER_FEED_ROOM:
        return user.role == Role.WORKER and user.worker_status == WorkerStatus.VERIFIED
    if room.startswith("job:"):
        if user.role == Role.ADMIN:
            return True
        job = db.session.get(Job, room[len("job:"):])
        return job is not None and user.id in (job.customer_id, job.worker_id)
    return False


@socketio.on("connect")
def handle_connect():
    logger.debug("[socket] Client connected: %s", request.sid)


@socketio.on("disconnect")
def handle_disconnect():
    logger.debug("[socket] Client disconnected: %s", request.sid)


@socketio.on("join")
def handle_join(data):
    """Join a room. data = { token: "<jwt>", room: "job:<id>" | "user:<id>" | ... }"""
    room = (data or {}).get("room")
    if not room:
        return
    user = _authenticate(data)
    if user is None or not _may_join(user, room):
        emit("error", {"error": "Not allowed to join {}".format(room)}, room=request.sid)
        return
    join_room(room)
    emit("joined", {"room": room}, room=request.sid)


@socketio.on("leave")
def handle_leave(data):
    room = (data or {}).get("room")
    if room:
        leave_room(room)


# ---------------------------------------------------------------------------
# Broadcast helpers (called from services after commit; never raise)
# ---------------------------------------------------------------------------
def _emit(event, payload, rooms):
    try:
        for room in rooms:
            socketio.emit(event, payload, room=room)
    except Exception:
        logger.exception("Socket emit %s failed", event)


def broadcast_job_status(job):
    """Push a status change to both parties, the job room and the admin room."""
    payload = {"job_id": job.id, "status": job.status}
    rooms = [job_room(job.id), user_room(job.customer_id), ADMIN_ROOM]
    if job.worker_id:
        rooms.append(user_room(job.worker_id))
    _emit("job:status", payload, rooms)


def broadcast_new_job(job):
    """Tell online workers a new job is open so they refresh their feed."""
    _emit("job:new", {"job_id": job.id, "category_id": job.category_id}, [WORKER_FEED_ROOM, ADMIN_ROOM])


def broadcast_job_taken(job_id):
    """Tell the worker feed a job is gone (accepted or cancelled)."""
    _emit("job:taken", {"job_id": job_id}, [WORKER_FEED_ROOM])


def broadcast_message(job_id, message_id):
    _emit("chat:message", {"job_id": job_id, "message_id": message_id}, [job_room(job_id)])


def broadcast_notification(user_id, notification_id):
    _emit("notification:new", {"notification_id": notification_id}, [user_room(user_id)])


def broadcast_wallet_update(worker_id):
    _emit("wallet:updated", {"worker_id": worker_id}, [user_room(worker_id)])
