"""
Payment settlement through Razorpay.

Flow:
    1. The customer asks for an order on a job awaiting payment
       (``create_order``). The gateway order is recorded as a PaymentOrder.
    2. The client pays through the Razorpay checkout and hands back
       ``order_id``, ``payment_id`` and ``signature``.
    3. ``verify_payment`` recomputes HMAC-SHA256(secret, "order_id|payment_id")
       and, only on a match, completes the job and credits the worker in one
       database transaction.

Without RAZORPAY_KEY_ID a local development order id is issued instead of
calling the gateway; verification still requires RAZORPAY_KEY_SECRET.
"""

import hashlib
import hmac
import logging
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from errors import (
    InvalidSignature, InvalidTransition, NotAuthorized, NotFound, PaymentGatewayError,
    ValidationError,
)
from ledger import append_transaction, parse_amount
from lifecycle import get_job
from models import (
    db, Job, JobStatus, PaymentOrder, TransactionType, generate_uuid, utcnow,
)
import notifications
from socket_events import broadcast_job_status, broadcast_wallet_update

logger = logging.getLogger(__name__)

_razorpay_client = None


def _get_razorpay():
    global _razorpay_client
    if _razorpay_client is None:
        import razorpay
        _razorpay_client = razorpay.Client(auth=(
            current_app.config.get("RAZORPAY_KEY_ID", ""),
            current_app.config.get("RAZORPAY_KEY_SECRET", ""),
        ))
    return _razorpay_client


def to_minor_units(amount):
    """Rupees to integer paise, rounding half-up."""
    paise = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(paise)


def compute_signature(order_id, payment_id, secret):
    body = "{}|{}".format(order_id, payment_id).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def signature_matches(order_id, payment_id, signature, secret):
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))


def _same_amount(a, b):
    return abs(float(a) - float(b)) < 0.005


def create_order(job_id, customer, amount=None):
    """Open a gateway order for the amount due on a job."""
    job = get_job(job_id)
    if job.customer_id != customer.id:
        raise NotAuthorized("Not authorised for this job")
    if job.status != JobStatus.COMPLETED_PENDING_PAYMENT:
        raise InvalidTransition("Job is not awaiting payment")
    if not job.amount:
        raise ValidationError("Job has no amount to charge")
    if amount is not None and not _same_amount(parse_amount(amount), job.amount):
        raise ValidationError("Amount does not match the amount due")

    config = current_app.config
    currency = config.get("PAYMENT_CURRENCY", "INR")
    amount_minor = to_minor_units(job.amount)
    key_id = config.get("RAZORPAY_KEY_ID", "")

    if key_id and config.get("RAZORPAY_KEY_SECRET"):
        try:
            order = _get_razorpay().order.create({
                "amount": amount_minor,
                "currency": currency,
                "receipt": job.id,
                "payment_capture": 1,
            })
        except Exception as e:
            logger.exception("Razorpay order creation failed for job %s", job.id)
            raise PaymentGatewayError("Razorpay error: {}".format(e))
        order_id = order["id"]
    else:
        order_id = "order_dev_{}".format(generate_uuid().replace("-", "")[:14])
        logger.info("[DEV] Issued local order %s for job %s", order_id, job.id)

    payment_order = PaymentOrder(
        order_id=order_id,
        job_id=job.id,
        amount=job.amount,
        amount_minor=amount_minor,
        currency=currency,
        status="created",
    )
    db.session.add(payment_order)
    db.session.commit()

    return {
        "order_id": order_id,
        "job_id": job.id,
        "amount": job.amount,
        "amount_minor": amount_minor,
        "currency": currency,
        "key_id": key_id or None,
    }


def verify_payment(order_id, payment_id, signature, job_id=None, worker_id=None, amount=None,
                   customer=None):
    """Verify a checkout response and settle the job.

    Nothing is written unless the signature matches. On success the job
    becomes COMPLETED, the order is marked paid and the assigned worker is
    credited the job amount, all in one commit. A replayed verification finds
    the job no longer awaiting payment and is refused.

    When ``customer`` is given the order must belong to one of their jobs.
    """
    if not order_id or not payment_id or not signature:
        raise ValidationError("order_id, payment_id and signature are required")
    if not all(isinstance(value, str) for value in (order_id, payment_id, signature)):
        raise ValidationError("order_id, payment_id and signature must be strings")

    secret = current_app.config.get("RAZORPAY_KEY_SECRET", "")
    if not secret:
        logger.error("RAZORPAY_KEY_SECRET is not configured; refusing to verify %s", order_id)
        raise PaymentGatewayError("Payment verification is not configured")

    if not signature_matches(order_id, payment_id, signature, secret):
        logger.warning("Signature mismatch for order %s (payment %s)", order_id, payment_id)
        raise InvalidSignature()

    order = PaymentOrder.query.filter_by(order_id=order_id).first()
    if order is None:
        raise NotFound("Payment order not found")
    if job_id is not None and job_id != order.job_id:
        raise ValidationError("Payment does not belong to this job")

    job = get_job(order.job_id)
    if customer is not None and job.customer_id != customer.id:
        raise NotAuthorized("Not authorised for this job")
    if worker_id is not None and worker_id != job.worker_id:
        raise ValidationError("Worker does not match the job's assigned worker")
    if amount is not None and not _same_amount(parse_amount(amount), order.amount):
        raise ValidationError("Amount does not match the order")
    if job.amount is None or not _same_amount(order.amount, job.amount):
        raise ValidationError("Order amount no longer matches the amount due")

    completed = (
        Job.query
        .filter(Job.id == job.id, Job.status == JobStatus.COMPLETED_PENDING_PAYMENT)
        .update({"status": JobStatus.COMPLETED}, synchronize_session=False)
    )
    if not completed:
        db.session.rollback()
        logger.warning("Verification for order %s refused: job %s not awaiting payment", order_id, order.job_id)
        raise InvalidTransition("Job is not awaiting payment")

    paid = (
        PaymentOrder.query
        .filter(PaymentOrder.id == order.id, PaymentOrder.status == "created")
        .update({
            "status": "paid",
            "payment_id": payment_id,
            "signature": signature,
            "paid_at": utcnow(),
        }, synchronize_session=False)
    )
    if not paid:
        db.session.rollback()
        raise InvalidTransition("Order has already been paid")

    worker_id = job.worker_id
    credited = job.amount
    txn = append_transaction(
        worker_id, credited, TransactionType.CREDIT,
        description="Payment for Job {} (Ref: {})".format(job.id[:8], payment_id),
        job_id=job.id,
        reference=payment_id,
    )
    db.session.commit()
    logger.info("Job %s paid via %s; credited %.2f to %s", job.id, payment_id, credited, worker_id)

    db.session.refresh(job)
    notifications.notify_payment_received(job, credited)
    broadcast_job_status(job)
    broadcast_wallet_update(worker_id)
    return job, txn
