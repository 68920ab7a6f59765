"""
Worker wallet ledger.

The balance is never stored; it is folded from the transaction log:

    balance = sum(CREDIT) - sum(DEBIT) over rows whose status is not FAILED

A PENDING withdrawal therefore reserves funds immediately, and a FAILED one
releases them. Rows are append-only apart from one PENDING -> COMPLETED/FAILED
status advance.
"""

import logging
import math

from sqlalchemy import case, func

from errors import InsufficientBalance, InvalidTransition, NotAuthorized, NotFound, ValidationError
from models import (
    db, Transaction, TransactionStatus, TransactionType, User, Role, utcnow,
)
from notifications import notify_withdrawal
from socket_events import broadcast_wallet_update

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = (TransactionType.CREDIT, TransactionType.DEBIT)
TRANSACTION_STATUSES = (TransactionStatus.PENDING, TransactionStatus.COMPLETED, TransactionStatus.FAILED)


def parse_amount(value, field="amount"):
    """Coerce a client-supplied money value to a positive float with 2 decimals."""
    try:
        amount = round(float(value), 2)
    except (TypeError, ValueError):
        raise ValidationError("{} must be a number".format(field))
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("{} must be greater than zero".format(field))
    return amount


def append_transaction(worker_id, amount, type, status=TransactionStatus.COMPLETED,
                       description=None, job_id=None, reference=None):
    """Add a ledger row to the current session. The caller commits."""
    if type not in TRANSACTION_TYPES:
        raise ValidationError("Unknown transaction type: {}".format(type))
    if status not in TRANSACTION_STATUSES:
        raise ValidationError("Unknown transaction status: {}".format(status))
    txn = Transaction(
        worker_id=worker_id,
        job_id=job_id,
        amount=parse_amount(amount),
        type=type,
        status=status,
        description=description,
        reference=reference,
        settled_at=utcnow() if status != TransactionStatus.PENDING else None,
    )
    db.session.add(txn)
    return txn


def fold_balance(transactions):
    """Balance of an iterable of transactions (anything with type/status/amount)."""
    balance = 0.0
    for txn in transactions:
        if txn.status == TransactionStatus.FAILED:
            continue
        if txn.type == TransactionType.CREDIT:
            balance += txn.amount
        elif txn.type == TransactionType.DEBIT:
            balance -= txn.amount
    return round(balance, 2)


def _sum(worker_id, expression, *criteria):
    total = (
        db.session.query(func.coalesce(func.sum(expression), 0.0))
        .filter(Transaction.worker_id == worker_id, *criteria)
        .scalar()
    )
    return round(float(total or 0.0), 2)


def compute_balance(worker_id):
    signed = case(
        (Transaction.type == TransactionType.CREDIT, Transaction.amount),
        else_=-Transaction.amount,
    )
    return _sum(worker_id, signed, Transaction.status != TransactionStatus.FAILED)


def list_transactions(worker_id, limit=50):
    return (
        Transaction.query
        .filter(Transaction.worker_id == worker_id)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .all()
    )


def wallet_summary(worker_id):
    return {
        "balance": compute_balance(worker_id),
        "total_earned": _sum(
            worker_id, Transaction.amount,
            Transaction.type == TransactionType.CREDIT,
            Transaction.status != TransactionStatus.FAILED,
        ),
        "pending_withdrawals": _sum(
            worker_id, Transaction.amount,
            Transaction.type == TransactionType.DEBIT,
            Transaction.status == TransactionStatus.PENDING,
        ),
    }


def request_withdrawal(worker, amount):
    """Reserve ``amount`` from the worker's balance as a PENDING debit."""
    if worker.role != Role.WORKER:
        raise NotAuthorized("Only workers have a wallet")
    amount = parse_amount(amount)

    # Serialise concurrent withdrawals for the same worker. SQLite has no
    # row locks and serialises writers on its own.
    db.session.query(User).filter(User.id == worker.id).with_for_update().one()

    balance = compute_balance(worker.id)
    if amount > balance:
        db.session.rollback()
        logger.info("Withdrawal of %.2f refused for %s (balance %.2f)", amount, worker.id, balance)
        raise InsufficientBalance(
            "Withdrawal amount {:.2f} exceeds available balance {:.2f}".format(amount, balance)
        )

    txn = append_transaction(
        worker.id, amount, TransactionType.DEBIT,
        status=TransactionStatus.PENDING,
        description="Withdrawal request",
    )
    db.session.commit()
    logger.info("Withdrawal %s requested by %s: %.2f", txn.id, worker.id, amount)

    notify_withdrawal(txn)
    broadcast_wallet_update(worker.id)
    return txn


def settle_withdrawal(transaction_id, status):
    """Move a PENDING withdrawal to COMPLETED or FAILED, exactly once."""
    if status not in (TransactionStatus.COMPLETED, TransactionStatus.FAILED):
        raise ValidationError("status must be COMPLETED or FAILED")

    updated = (
        Transaction.query
        .filter(
            Transaction.id == transaction_id,
            Transaction.type == TransactionType.DEBIT,
            Transaction.status == TransactionStatus.PENDING,
        )
        .update({"status": status, "settled_at": utcnow()}, synchronize_session=False)
    )
    db.session.commit()

    txn = db.session.get(Transaction, transaction_id)
    if txn is not None:
        db.session.refresh(txn)
    if not updated:
        if txn is None or txn.type != TransactionType.DEBIT:
            raise NotFound("Withdrawal not found")
        raise InvalidTransition("Withdrawal already settled as {}".format(txn.status))

    logger.info("Withdrawal %s settled as %s", transaction_id, status)
    notify_withdrawal(txn)
    broadcast_wallet_update(txn.worker_id)
    return txn


def list_withdrawals(status=None):
    query = Transaction.query.filter(Transaction.type == TransactionType.DEBIT)
    if status:
        query = query.filter(Transaction.status == status)
    return query.order_by(Transaction.created_at.desc()).all()
