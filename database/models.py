"""
SQLAlchemy ORM models for the marketplace tables.

This module defines:
- users: Accounts with a role (candidate / interviewer / admin)
- candidate_profiles / interviewer_profiles: Role-specific profiles
- slots: Interview time windows offered by interviewers
- bookings: A candidate's claim on a slot
- payments: One payment attempt for a booking
- approval_requests: Interviewer verification requests

All models use:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for datetime fields (always written in UTC)
- NUMERIC(12, 2) for money, never floats
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from shared.config import get_settings


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def _default_currency() -> str:
    return get_settings().DEFAULT_CURRENCY


# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _enum_column(enum_cls: type[PyEnum], name: str) -> SQLEnum:
    # values_callable stores .value ("pending") instead of .name ("PENDING"),
    # which the partial indexes below rely on
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda x: [e.value for e in x],
        validate_strings=True,
    )


# ============================================================================
# Enums
# ============================================================================


class UserRole(str, PyEnum):
    """Role of an account on the platform."""

    CANDIDATE = "candidate"
    INTERVIEWER = "interviewer"
    ADMIN = "admin"


class VerificationStatus(str, PyEnum):
    """Interviewer verification lifecycle."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class SlotStatus(str, PyEnum):
    """Slot lifecycle status."""

    AVAILABLE = "available"
    PENDING_PAYMENT = "pending_payment"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def __str__(self):
        return self.value


class BookingStatus(str, PyEnum):
    """Booking lifecycle status."""

    PENDING = "pending"          # Slot reserved, waiting for payment
    CONFIRMED = "confirmed"      # Payment captured
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

    def __str__(self):
        return self.value


class PaymentStatus(str, PyEnum):
    """Payment attempt status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

    def __str__(self):
        return self.value


class ApprovalStatus(str, PyEnum):
    """Interviewer verification request status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    def __str__(self):
        return self.value


# ============================================================================
# Accounts & Profiles
# ============================================================================


class User(Base):
    """User account. Registration and credentials live outside this service."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "user_role"), nullable=False, default=UserRole.CANDIDATE
    )
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"


class CandidateProfile(Base):
    """
    Candidate profile - required before a candidate can book a slot.

    A profile counts as complete once a resume has been uploaded.
    """

    __tablename__ = "candidate_profiles"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    resume_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    skills: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    experience_years: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    provider_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User")

    @property
    def is_complete(self) -> bool:
        return bool(self.resume_url and self.resume_url.strip())

    def __repr__(self) -> str:
        return f"<CandidateProfile(id={self.id}, user_id={self.user_id})>"


class InterviewerProfile(Base):
    """Interviewer profile with verification state."""

    __tablename__ = "interviewer_profiles"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    bio: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    companies: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    expertise: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    experience_years: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), default=Decimal("0.00"), nullable=False
    )
    verification_status: Mapped[VerificationStatus] = mapped_column(
        _enum_column(VerificationStatus, "verification_status"),
        default=VerificationStatus.PENDING,
        nullable=False,
    )
    linkedin_profile: Mapped[str | None] = mapped_column(String(500), nullable=True)
    employee_mail_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    meet_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<InterviewerProfile(id={self.id}, user_id={self.user_id}, "
            f"verification_status='{self.verification_status.value}')>"
        )


# ============================================================================
# Reservation Models
# ============================================================================


class Slot(Base):
    """
    Slot model - An interview time window offered by an interviewer.

    ``version`` is the optimistic-concurrency token: every status write goes
    through a compare-and-swap on (status, version) and increments it.
    ``current_booking_id`` points at the booking holding the slot while it is
    pending_payment or booked. It is a plain column rather than a foreign key
    because bookings already reference slots (no circular constraint).
    """

    __tablename__ = "slots"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    interviewer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("interviewer_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Scheduling
    start_time: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, index=True
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, default=45, nullable=False)

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default=_default_currency, nullable=False)

    # Status tracking
    status: Mapped[SlotStatus] = mapped_column(
        _enum_column(SlotStatus, "slot_status"),
        default=SlotStatus.AVAILABLE,
        nullable=False,
        index=True,
    )
    current_booking_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    meet_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    interviewer: Mapped["InterviewerProfile"] = relationship("InterviewerProfile")

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_slot_price_non_negative"),
        CheckConstraint("duration_minutes > 0", name="check_slot_duration_positive"),
        Index("idx_slots_interviewer_status", "interviewer_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Slot(id={self.id}, status='{self.status.value}', version={self.version})>"


class Booking(Base):
    """
    Booking model - A candidate's claim on a slot.

    At most one pending/confirmed booking may exist per slot; the partial
    unique index below backs the slot compare-and-swap at the storage level.
    """

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # Foreign keys
    slot_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("slots.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    interviewer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("interviewer_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    candidate_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("candidate_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    booked_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    scheduled_start_time: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )

    status: Mapped[BookingStatus] = mapped_column(
        _enum_column(BookingStatus, "booking_status"),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default=_default_currency, nullable=False)

    # Set once the Payment row exists (same transaction)
    payment_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Pending-payment deadline used by the expiration worker
    expires_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, index=True
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    slot: Mapped["Slot"] = relationship("Slot")
    candidate: Mapped["CandidateProfile"] = relationship("CandidateProfile")
    interviewer: Mapped["InterviewerProfile"] = relationship("InterviewerProfile")

    __table_args__ = (
        Index(
            "uq_bookings_active_slot",
            "slot_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'confirmed')"),
            sqlite_where=text("status IN ('pending', 'confirmed')"),
        ),
        Index("idx_bookings_status_expires_at", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, slot_id={self.slot_id}, status='{self.status.value}')>"


class Payment(Base):
    """
    Payment model - One payment attempt for a booking.

    ``platform_fee + interviewer_amount == amount`` always holds; see
    marketplace.fees.compute_fee_split.
    """

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    candidate_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("candidate_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    interviewer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("interviewer_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Amounts
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default=_default_currency, nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )
    interviewer_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )

    # Provider integration IDs
    provider: Mapped[str] = mapped_column(String(50), default="stripe", nullable=False)
    provider_order_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )
    provider_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_refund_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus, "payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    booking: Mapped["Booking"] = relationship("Booking")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        Index(
            "uq_payments_active_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status != 'failed'"),
            sqlite_where=text("status != 'failed'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking_id={self.booking_id}, status='{self.status.value}')>"


# ============================================================================
# Verification Workflow
# ============================================================================


class ApprovalRequest(Base):
    """Interviewer verification request reviewed by an admin."""

    __tablename__ = "approval_requests"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    interviewer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("interviewer_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    status: Mapped[ApprovalStatus] = mapped_column(
        _enum_column(ApprovalStatus, "approval_status"),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    decided_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    decided_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    interviewer: Mapped["InterviewerProfile"] = relationship("InterviewerProfile")

    __table_args__ = (
        Index(
            "uq_approval_requests_pending_interviewer",
            "interviewer_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<ApprovalRequest(id={self.id}, status='{self.status.value}')>"
