"""
In-app notification service for TaskHive.

IMPORTANT: No function in this module should ever raise an exception.
All errors are caught and logged so that a notification failure never
takes down a lifecycle transition or payment flow. Callers invoke these
after their own commit, so a failure here only loses the notification.
"""

import logging

from models import db, Notification, NOTIFICATION_TYPES
from socket_events import broadcast_notification

logger = logging.getLogger(__name__)


def notify(user_id, title, message, type="INFO", link=None):
    """Persist a notification and ping the user's room. Returns the row or None.

    Never raises.
    """
    if not user_id:
        return None
    if type not in NOTIFICATION_TYPES:
        type = "INFO"
    try:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            link=link,
        )
        db.session.add(notification)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to store notification for %s: %s", user_id, title)
        return None

    broadcast_notification(user_id, notification.id)
    return notification


def job_link(job_id):
    return "/jobs/{}".format(job_id)


def notify_job_accepted(job):
    notify(job.customer_id, "Worker on the way",
           "A worker accepted your request and is heading to you.",
           type="SUCCESS", link=job_link(job.id))


def notify_worker_arrived(job):
    notify(job.customer_id, "Worker arrived",
           "Your worker has arrived. Share your start code to begin the job.",
           type="INFO", link=job_link(job.id))


def notify_job_started(job):
    notify(job.customer_id, "Job started",
           "Work on your request has started.", type="INFO", link=job_link(job.id))


def notify_work_completed(job):
    notify(job.customer_id, "Payment due",
           "Work is complete. Amount due: {:.2f}".format(job.amount or 0.0),
           type="WARNING", link=job_link(job.id))


def notify_job_cancelled(job):
    if job.worker_id:
        notify(job.worker_id, "Job cancelled",
               "The customer cancelled this job.", type="WARNING", link=job_link(job.id))


def notify_payment_received(job, amount):
    notify(job.worker_id, "Payment received",
           "{:.2f} was credited to your wallet.".format(amount),
           type="SUCCESS", link="/wallet")
    notify(job.customer_id, "Payment successful",
           "Thank you! Your payment was received.", type="SUCCESS", link=job_link(job.id))


def notify_dispute_opened(job):
    if job.worker_id:
        notify(job.worker_id, "Issue reported",
               "The customer reported an issue with this job. An admin will review it.",
               type="ERROR", link=job_link(job.id))


def notify_dispute_resolved(job, resolution):
    text = "Resolved in favour of payment to the worker." if resolution == "PAY" \
        else "Resolved with a refund to the customer."
    for user_id in (job.customer_id, job.worker_id):
        notify(user_id, "Dispute resolved", text, type="INFO", link=job_link(job.id))


def notify_withdrawal(transaction):
    if transaction.status == "PENDING":
        title, kind = "Withdrawal requested", "INFO"
    elif transaction.status == "COMPLETED":
        title, kind = "Withdrawal completed", "SUCCESS"
    else:
        title, kind = "Withdrawal failed", "ERROR"
    notify(transaction.worker_id, title,
           "Withdrawal of {:.2f}: {}".format(transaction.amount, transaction.status.lower()),
           type=kind, link="/wallet")
