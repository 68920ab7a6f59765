"""
Job lifecycle state machine.

    SEARCHING -> ACCEPTED -> ARRIVED -> IN_PROGRESS
        -> COMPLETED_PENDING_PAYMENT -> COMPLETED
    SEARCHING / ACCEPTED -> CANCELLED                   (customer)
    ACCEPTED / ARRIVED / IN_PROGRESS -> DISPUTED        (customer, with reason)
    DISPUTED -> COMPLETED | CANCELLED                   (admin)

Every transition is a single conditional UPDATE guarded on the expected
source status (and, for worker actions, the assigned worker). When the
UPDATE matches no row the job is re-read only to pick the right error;
state is never written from a stale read. The payment step
(COMPLETED_PENDING_PAYMENT -> COMPLETED) lives in ``settlement``.
"""

import hmac
import logging

from sqlalchemy import func

import catalog
from errors import (
    AlreadyAccepted, InvalidOTP, InvalidTransition, NotAuthorized, NotFound, ValidationError,
)
from ledger import append_transaction, parse_amount
import matching
from models import db, Job, JobStatus, Role, TransactionType, WorkerStatus, utcnow
import notifications
from socket_events import broadcast_job_status, broadcast_new_job, broadcast_job_taken, broadcast_wallet_update

logger = logging.getLogger(__name__)

CANCELLABLE = (JobStatus.SEARCHING, JobStatus.ACCEPTED)
DISPUTABLE = (JobStatus.ACCEPTED, JobStatus.ARRIVED, JobStatus.IN_PROGRESS)
RESOLUTIONS = ("PAY", "REFUND")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def get_job(job_id):
    job = db.session.get(Job, job_id) if job_id else None
    if job is None:
        raise NotFound("Job not found")
    return job


def ensure_can_view(job, user):
    """Customer owner, assigned worker and admins see a job; verified workers
    may also see jobs that are still open."""
    if user.role == Role.ADMIN or user.id in (job.customer_id, job.worker_id):
        return
    if (
        user.role == Role.WORKER
        and user.worker_status == WorkerStatus.VERIFIED
        and job.status == JobStatus.SEARCHING
    ):
        return
    raise NotAuthorized("You do not have access to this job")


def _require_owner(job, customer):
    if job.customer_id != customer.id:
        raise NotAuthorized("Only the customer who posted this job can do that")


def _require_assigned(job, worker):
    if worker.role != Role.WORKER or job.worker_id != worker.id:
        raise NotAuthorized("Only the assigned worker can do that")


def _advance(job_id, from_statuses, values, *criteria):
    """Conditional UPDATE; returns the number of rows moved (0 or 1)."""
    return (
        Job.query
        .filter(Job.id == job_id, Job.status.in_(from_statuses), *criteria)
        .update(values, synchronize_session=False)
    )


def _refused(job_id, action):
    """Roll back a failed transition and raise the error that explains it."""
    db.session.rollback()
    job = db.session.get(Job, job_id)
    if job is None:
        raise NotFound("Job not found")
    raise InvalidTransition("Cannot {} a job that is {}".format(action, job.status))


def _reload(job_id):
    job = db.session.get(Job, job_id)
    db.session.refresh(job)
    return job


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def create_job(customer, category_id, location_address, description=None,
               location_lat=None, location_lng=None, scheduled_time=None, images=None):
    if customer.role != Role.CUSTOMER:
        raise NotAuthorized("Only customers can post jobs")
    category = catalog.get_category(category_id)

    location_address = (location_address or "").strip()
    if not location_address:
        raise ValidationError("location_address is required")
    lat, lng = matching.parse_position(location_lat, location_lng, "location_lat", "location_lng")
    if images is not None and not isinstance(images, list):
        raise ValidationError("images must be a list of storage paths")

    job = Job(
        customer_id=customer.id,
        category_id=category.id,
        status=JobStatus.SEARCHING,
        description=(description or "").strip() or None,
        location_address=location_address,
        location_lat=lat,
        location_lng=lng,
        scheduled_time=scheduled_time,
        images=[str(path) for path in (images or [])],
    )
    db.session.add(job)
    db.session.commit()
    logger.info("Job %s created by %s (%s)", job.id, customer.id, category.name)

    broadcast_new_job(job)
    return job


def accept_job(job_id, worker):
    """Claim an open job. Exactly one of any number of concurrent callers wins."""
    if worker.role != Role.WORKER or worker.worker_status != WorkerStatus.VERIFIED:
        raise NotAuthorized("Only verified workers can accept jobs")

    updated = _advance(
        job_id, (JobStatus.SEARCHING,),
        {"status": JobStatus.ACCEPTED, "worker_id": worker.id, "accepted_at": utcnow()},
        Job.worker_id.is_(None),
    )
    db.session.commit()

    if not updated:
        job = db.session.get(Job, job_id)
        if job is None:
            raise NotFound("Job not found")
        db.session.refresh(job)
        if job.worker_id and job.worker_id != worker.id:
            logger.info("Worker %s lost the race for job %s", worker.id, job_id)
            raise AlreadyAccepted()
        raise InvalidTransition("Cannot accept a job that is {}".format(job.status))

    job = _reload(job_id)
    logger.info("Job %s accepted by worker %s", job_id, worker.id)

    notifications.notify_job_accepted(job)
    broadcast_job_status(job)
    broadcast_job_taken(job.id)
    return job


def mark_arrived(job_id, worker):
    job = get_job(job_id)
    _require_assigned(job, worker)

    updated = _advance(
        job_id, (JobStatus.ACCEPTED,),
        {"status": JobStatus.ARRIVED, "arrived_at": utcnow()},
        Job.worker_id == worker.id,
    )
    if not updated:
        _refused(job_id, "mark arrival on")
    db.session.commit()

    job = _reload(job_id)
    notifications.notify_worker_arrived(job)
    broadcast_job_status(job)
    return job


def start_job(job_id, worker, otp):
    """Begin work once the customer's start code is presented."""
    job = get_job(job_id)
    _require_assigned(job, worker)
    if job.status != JobStatus.ARRIVED:
        raise InvalidTransition("Cannot start a job that is {}".format(job.status))

    supplied = str(otp if otp is not None else "").strip()
    if not hmac.compare_digest(supplied.encode("utf-8"), (job.otp or "").encode("utf-8")):
        logger.warning("Rejected start code for job %s from worker %s", job_id, worker.id)
        raise InvalidOTP()

    updated = _advance(
        job_id, (JobStatus.ARRIVED,),
        {"status": JobStatus.IN_PROGRESS, "started_at": utcnow()},
        Job.worker_id == worker.id,
    )
    if not updated:
        _refused(job_id, "start")
    db.session.commit()

    job = _reload(job_id)
    notifications.notify_job_started(job)
    broadcast_job_status(job)
    return job


def complete_work(job_id, worker, amount):
    """Finish work and record the amount the customer owes."""
    job = get_job(job_id)
    _require_assigned(job, worker)
    amount = parse_amount(amount)

    category = job.category
    if category is not None and amount < (category.base_price or 0):
        logger.info(
            "Job %s completed below base price: %.2f < %.2f", job_id, amount, category.base_price
        )

    updated = _advance(
        job_id, (JobStatus.IN_PROGRESS,),
        {
            "status": JobStatus.COMPLETED_PENDING_PAYMENT,
            "amount": amount,
            "completed_at": utcnow(),
        },
        Job.worker_id == worker.id,
    )
    if not updated:
        _refused(job_id, "complete")
    db.session.commit()

    job = _reload(job_id)
    notifications.notify_work_completed(job)
    broadcast_job_status(job)
    return job


def cancel_job(job_id, customer):
    job = get_job(job_id)
    _require_owner(job, customer)

    updated = _advance(
        job_id, CANCELLABLE,
        {"status": JobStatus.CANCELLED, "cancelled_at": utcnow()},
    )
    if not updated:
        _refused(job_id, "cancel")
    db.session.commit()

    job = _reload(job_id)
    logger.info("Job %s cancelled by customer %s", job_id, customer.id)
    notifications.notify_job_cancelled(job)
    broadcast_job_status(job)
    if job.worker_id is None:
        broadcast_job_taken(job.id)
    return job


def report_issue(job_id, customer, reason):
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to report an issue")
    job = get_job(job_id)
    _require_owner(job, customer)

    updated = _advance(
        job_id, DISPUTABLE,
        {"status": JobStatus.DISPUTED, "dispute_reason": reason},
    )
    if not updated:
        _refused(job_id, "report an issue on")
    db.session.commit()

    job = _reload(job_id)
    logger.warning("Dispute opened on job %s by customer %s", job_id, customer.id)
    notifications.notify_dispute_opened(job)
    broadcast_job_status(job)
    return job


def resolve_dispute(job_id, admin, resolution, amount=None):
    """Close a dispute: PAY completes the job and credits the worker,
    REFUND cancels it. The refund itself happens at the gateway; no ledger
    row is written for it."""
    if admin.role != Role.ADMIN:
        raise NotAuthorized("Only admins can resolve disputes")
    resolution = (resolution or "").upper()
    if resolution not in RESOLUTIONS:
        raise ValidationError("resolution must be PAY or REFUND")

    job = get_job(job_id)
    if job.status != JobStatus.DISPUTED:
        raise InvalidTransition("Cannot resolve a job that is {}".format(job.status))

    if resolution == "PAY":
        if amount is not None:
            payout = parse_amount(amount)
        elif job.amount:
            payout = job.amount
        elif job.category is not None and job.category.base_price:
            payout = job.category.base_price
        else:
            raise ValidationError("amount is required to pay out this dispute")

        updated = _advance(
            job_id, (JobStatus.DISPUTED,),
            {
                "status": JobStatus.COMPLETED,
                "amount": payout,
                "completed_at": func.coalesce(Job.completed_at, utcnow()),
            },
        )
        if not updated:
            _refused(job_id, "resolve")
        append_transaction(
            job.worker_id, payout, TransactionType.CREDIT,
            description="Dispute settlement for Job {}".format(job_id[:8]),
            job_id=job_id,
        )
        db.session.commit()
        broadcast_wallet_update(job.worker_id)
    else:
        updated = _advance(
            job_id, (JobStatus.DISPUTED,),
            {"status": JobStatus.CANCELLED, "cancelled_at": utcnow()},
        )
        if not updated:
            _refused(job_id, "resolve")
        db.session.commit()

    job = _reload(job_id)
    logger.info("Dispute on job %s resolved by %s: %s", job_id, admin.id, resolution)
    notifications.notify_dispute_resolved(job, resolution)
    broadcast_job_status(job)
    return job
