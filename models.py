"""
TaskHive SQLAlchemy Models
All database entities for the local services marketplace.
"""

import uuid
import secrets
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import (
    Column, String, Float, Boolean, Integer, Text, DateTime, ForeignKey, JSON,
    CheckConstraint, Index, func
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import relationship
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()


def generate_uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


def generate_otp():
    """Generate the 4-digit start code shown to the customer."""
    return "{:04d}".format(secrets.randbelow(10000))


def _iso(value):
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------------
class Role:
    CUSTOMER = "customer"
    WORKER = "worker"
    ADMIN = "admin"

    ALL = (CUSTOMER, WORKER, ADMIN)


class AccountStatus:
    ACTIVE = "active"
    SUSPENDED = "suspended"


class WorkerStatus:
    UNVERIFIED = "unverified"
    PENDING_REVIEW = "pending_review"
    VERIFIED = "verified"
    SUSPENDED = "suspended"


class JobStatus:
    SEARCHING = "SEARCHING"
    ACCEPTED = "ACCEPTED"
    ARRIVED = "ARRIVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED_PENDING_PAYMENT = "COMPLETED_PENDING_PAYMENT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"

    ALL = (
        SEARCHING, ACCEPTED, ARRIVED, IN_PROGRESS,
        COMPLETED_PENDING_PAYMENT, COMPLETED, CANCELLED, DISPUTED,
    )
    TERMINAL = (COMPLETED, CANCELLED)
    WORKER_ACTIVE = (ACCEPTED, ARRIVED, IN_PROGRESS, COMPLETED_PENDING_PAYMENT)


class TransactionType:
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class TransactionStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


NOTIFICATION_TYPES = ("INFO", "SUCCESS", "WARNING", "ERROR")


# ---------------------------------------------------------------------------
# User (profile of a customer, worker or admin)
# ---------------------------------------------------------------------------
class User(db.Model):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=True, index=True)
    phone = Column(String(20), nullable=True)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=Role.CUSTOMER)
    status = Column(String(20), nullable=False, default=AccountStatus.ACTIVE)

    # Worker-only fields
    worker_status = Column(String(20), nullable=True)
    # worker_status held while suspended, restored on unsuspend
    suspended_worker_status = Column(String(20), nullable=True)
    skills = Column(JSON, nullable=True, default=list)  # category ids
    is_online = Column(Boolean, default=False)
    service_radius_km = Column(Float, nullable=True)
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    bio = Column(Text, nullable=True)
    experience_years = Column(Integer, nullable=True)
    verification_docs = Column(JSON, nullable=True, default=list)  # storage paths

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    notifications = relationship("Notification", back_populates="user", lazy="dynamic")

    __table_args__ = (
        CheckConstraint("role IN ('customer', 'worker', 'admin')", name="ck_users_role"),
        Index("ix_users_role_worker_status", "role", "worker_status"),
    )

    @property
    def is_worker(self):
        return self.role == Role.WORKER

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    @property
    def is_suspended(self):
        return self.status == AccountStatus.SUSPENDED

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def rating_summary(self):
        """Average rating and review count, derived from reviews on every read."""
        avg, count = (
            db.session.query(func.avg(Review.rating), func.count(Review.id))
            .filter(Review.reviewee_id == self.id)
            .one()
        )
        return (round(float(avg), 2) if avg is not None else None), int(count or 0)

    def to_dict(self, include_private=False):
        data = {
            "id": self.id,
            "email": self.email,
            "phone": self.phone,
            "name": self.name,
            "role": self.role,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if self.role == Role.WORKER:
            rating, review_count = self.rating_summary()
            data.update({
                "worker_status": self.worker_status,
                "skills": self.skills or [],
                "is_online": bool(self.is_online),
                "service_radius_km": self.service_radius_km,
                "bio": self.bio,
                "experience_years": self.experience_years,
                "rating": rating,
                "review_count": review_count,
            })
            if include_private:
                data.update({
                    "current_lat": self.current_lat,
                    "current_lng": self.current_lng,
                    "verification_docs": self.verification_docs or [],
                })
        return data


# ---------------------------------------------------------------------------
# ServiceCategory
# ---------------------------------------------------------------------------
class ServiceCategory(db.Model):
    __tablename__ = "service_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False, unique=True)
    icon = Column(String(50), nullable=False, default="wrench")
    description = Column(Text, nullable=True)
    base_price = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_category_base_price"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "description": self.description,
            "base_price": self.base_price,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------
class Job(db.Model):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    customer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    # No FK: deleting a category must leave its jobs untouched.
    category_id = Column(String(36), nullable=False, index=True)

    status = Column(String(30), nullable=False, default=JobStatus.SEARCHING)
    otp = Column(String(4), nullable=False, default=generate_otp)
    amount = Column(Float, nullable=True)

    description = Column(Text, nullable=True)
    location_address = Column(Text, nullable=False)
    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)
    images = Column(JSON, nullable=True, default=list)
    scheduled_time = Column(DateTime, nullable=True)
    dispute_reason = Column(Text, nullable=True)

    accepted_at = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    customer = relationship("User", foreign_keys=[customer_id], backref="customer_jobs")
    worker = relationship("User", foreign_keys=[worker_id], backref="worker_jobs")

    __table_args__ = (
        CheckConstraint("amount IS NULL OR amount > 0", name="ck_jobs_amount_positive"),
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_status_worker", "status", "worker_id"),
        Index("ix_jobs_location", "location_lat", "location_lng"),
    )

    @property
    def category(self):
        return db.session.get(ServiceCategory, self.category_id) if self.category_id else None

    def to_dict(self, include_otp=False):
        category = self.category
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "worker_id": self.worker_id,
            "category_id": self.category_id,
            "category_name": category.name if category else "Unknown Service",
            "category_icon": category.icon if category else "wrench",
            "status": self.status,
            "amount": self.amount,
            "description": self.description,
            "location_address": self.location_address,
            "location_lat": self.location_lat,
            "location_lng": self.location_lng,
            "images": self.images or [],
            "scheduled_time": _iso(self.scheduled_time),
            "dispute_reason": self.dispute_reason,
            "accepted_at": _iso(self.accepted_at),
            "arrived_at": _iso(self.arrived_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "cancelled_at": _iso(self.cancelled_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_otp:
            data["otp"] = self.otp
        return data


# ---------------------------------------------------------------------------
# Transaction (worker wallet ledger entry)
# ---------------------------------------------------------------------------
class Transaction(db.Model):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    worker_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Float, nullable=False)
    type = Column(String(10), nullable=False)
    status = Column(String(10), nullable=False, default=TransactionStatus.PENDING)
    description = Column(Text, nullable=True)
    reference = Column(String(255), nullable=True)  # gateway payment id
    created_at = Column(DateTime, default=utcnow)
    settled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint("type IN ('CREDIT', 'DEBIT')", name="ck_transactions_type"),
        CheckConstraint("status IN ('PENDING', 'COMPLETED', 'FAILED')", name="ck_transactions_status"),
        Index("ix_transactions_worker_created", "worker_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "worker_id": self.worker_id,
            "job_id": self.job_id,
            "amount": self.amount,
            "type": self.type,
            "status": self.status,
            "description": self.description,
            "reference": self.reference,
            "created_at": _iso(self.created_at),
            "settled_at": _iso(self.settled_at),
        }


# ---------------------------------------------------------------------------
# PaymentOrder (one Razorpay order per payment attempt)
# ---------------------------------------------------------------------------
class PaymentOrder(db.Model):
    __tablename__ = "payment_orders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_id = Column(String(255), nullable=False, unique=True, index=True)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    amount_minor = Column(Integer, nullable=False)  # paise
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default="created")  # created, paid
    payment_id = Column(String(255), nullable=True)
    signature = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    paid_at = Column(DateTime, nullable=True)

    job = relationship("Job", backref="payment_orders")

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "job_id": self.job_id,
            "amount": self.amount,
            "amount_minor": self.amount_minor,
            "currency": self.currency,
            "status": self.status,
            "payment_id": self.payment_id,
            "created_at": _iso(self.created_at),
            "paid_at": _iso(self.paid_at),
        }


# ---------------------------------------------------------------------------
# Message (chat between customer and assigned worker on a job)
# ---------------------------------------------------------------------------
class Message(db.Model):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    sender = relationship("User", foreign_keys=[sender_id])

    __table_args__ = (
        Index("ix_messages_job_created", "job_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "sender_id": self.sender_id,
            "sender_name": self.sender.name if self.sender else None,
            "text": self.text,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------
class Notification(db.Model):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    type = Column(String(10), nullable=False, default="INFO")
    link = Column(String(255), nullable=True)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="notifications")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "link": self.link,
            "is_read": self.is_read,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Review (customer review of a completed job)
# ---------------------------------------------------------------------------
class Review(db.Model):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    job_id = Column(String(36), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    reviewer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewee_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)  # 1-5
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating"),
    )

    reviewer = relationship("User", foreign_keys=[reviewer_id])

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "reviewer_id": self.reviewer_id,
            "reviewee_id": self.reviewee_id,
            "rating": self.rating,
            "comment": self.comment,
            "reviewer_name": self.reviewer.name if self.reviewer else None,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# SystemSettings (singleton row, id "global")
# ---------------------------------------------------------------------------
class SystemSettings(db.Model):
    __tablename__ = "system_settings"

    id = Column(String(36), primary_key=True, default="global")
    maintenance_mode = Column(Boolean, nullable=False, default=False)
    allow_registration = Column(Boolean, nullable=False, default=True)
    commission_rate = Column(Float, nullable=False, default=10.0)  # percent
    support_phone = Column(String(30), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("commission_rate >= 0 AND commission_rate <= 100", name="ck_settings_commission"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "maintenance_mode": self.maintenance_mode,
            "allow_registration": self.allow_registration,
            "commission_rate": self.commission_rate,
            "support_phone": self.support_phone,
            "updated_at": _iso(self.updated_at),
        }


# ---------------------------------------------------------------------------
# Upsert helper
# ---------------------------------------------------------------------------
def insert_ignore(model, values):
    """INSERT ... ON CONFLICT DO NOTHING for the current dialect.

    Any unique conflict (primary key or e.g. email) leaves the existing row
    alone. Returns True when a row was inserted. Does not commit.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model.__table__).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite_insert(model.__table__).values(**values).on_conflict_do_nothing()
    else:
        if db.session.get(model, values["id"]) is not None:
            return False
        db.session.add(model(**values))
        db.session.flush()
        return True
    result = db.session.execute(stmt)
    return bool(result.rowcount)
