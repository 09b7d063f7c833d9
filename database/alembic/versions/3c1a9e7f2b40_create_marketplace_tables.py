"""Create marketplace tables: users, profiles, slots, bookings, payments, approval_requests

Revision ID: 3c1a9e7f2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3c1a9e7f2b40'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

user_role = sa.Enum('candidate', 'interviewer', 'admin', name='user_role')
verification_status = sa.Enum('pending', 'verified', 'rejected', name='verification_status')
slot_status = sa.Enum(
    'available', 'pending_payment', 'booked', 'completed', 'cancelled', name='slot_status'
)
booking_status = sa.Enum(
    'pending', 'confirmed', 'cancelled', 'rescheduled', 'completed', 'no_show',
    name='booking_status',
)
payment_status = sa.Enum('pending', 'completed', 'failed', 'refunded', name='payment_status')
approval_status = sa.Enum('pending', 'approved', 'rejected', name='approval_status')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('avatar_url', sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table('candidate_profiles',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('resume_url', sa.String(length=500), nullable=True),
        sa.Column('skills', sa.JSON(), nullable=False),
        sa.Column('experience_years', sa.Integer(), nullable=False),
        sa.Column('provider_customer_id', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_candidate_profiles_user_id', 'candidate_profiles', ['user_id'], unique=True)

    op.create_table('interviewer_profiles',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('bio', sa.String(length=200), nullable=False),
        sa.Column('companies', sa.JSON(), nullable=False),
        sa.Column('expertise', sa.JSON(), nullable=False),
        sa.Column('experience_years', sa.Integer(), nullable=False),
        sa.Column('rating', sa.Numeric(precision=3, scale=2), nullable=False),
        sa.Column('verification_status', verification_status, nullable=False),
        sa.Column('linkedin_profile', sa.String(length=500), nullable=True),
        sa.Column('employee_mail_id', sa.String(length=255), nullable=True),
        sa.Column('payouts_enabled', sa.Boolean(), nullable=False),
        sa.Column('meet_link', sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_interviewer_profiles_user_id', 'interviewer_profiles', ['user_id'], unique=True)

    op.create_table('slots',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('interviewer_id', sa.UUID(), nullable=False),
        sa.Column('start_time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', slot_status, nullable=False),
        sa.Column('current_booking_id', sa.UUID(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('meet_link', sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='check_slot_price_non_negative'),
        sa.CheckConstraint('duration_minutes > 0', name='check_slot_duration_positive'),
        sa.ForeignKeyConstraint(['interviewer_id'], ['interviewer_profiles.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_slots_interviewer_id', 'slots', ['interviewer_id'], unique=False)
    op.create_index('ix_slots_start_time', 'slots', ['start_time'], unique=False)
    op.create_index('ix_slots_status', 'slots', ['status'], unique=False)
    op.create_index('idx_slots_interviewer_status', 'slots', ['interviewer_id', 'status'], unique=False)

    op.create_table('bookings',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('slot_id', sa.UUID(), nullable=False),
        sa.Column('interviewer_id', sa.UUID(), nullable=False),
        sa.Column('candidate_id', sa.UUID(), nullable=False),
        sa.Column('booked_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('scheduled_start_time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_id', sa.UUID(), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['slot_id'], ['slots.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['interviewer_id'], ['interviewer_profiles.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['candidate_id'], ['candidate_profiles.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bookings_slot_id', 'bookings', ['slot_id'], unique=False)
    op.create_index('ix_bookings_interviewer_id', 'bookings', ['interviewer_id'], unique=False)
    op.create_index('ix_bookings_candidate_id', 'bookings', ['candidate_id'], unique=False)
    op.create_index('ix_bookings_status', 'bookings', ['status'], unique=False)
    op.create_index('ix_bookings_expires_at', 'bookings', ['expires_at'], unique=False)
    op.create_index('idx_bookings_status_expires_at', 'bookings', ['status', 'expires_at'], unique=False)
    # At most one active booking per slot
    op.create_index(
        'uq_bookings_active_slot', 'bookings', ['slot_id'], unique=True,
        postgresql_where=sa.text("status IN ('pending', 'confirmed')"),
    )

    op.create_table('payments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('booking_id', sa.UUID(), nullable=False),
        sa.Column('candidate_id', sa.UUID(), nullable=False),
        sa.Column('interviewer_id', sa.UUID(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('platform_fee', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('interviewer_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('provider_order_id', sa.String(length=255), nullable=True),
        sa.Column('provider_payment_id', sa.String(length=255), nullable=True),
        sa.Column('provider_refund_id', sa.String(length=255), nullable=True),
        sa.Column('order_attempts', sa.Integer(), nullable=False),
        sa.Column('status', payment_status, nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('provider_payload', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount >= 0', name='check_payment_amount_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['candidate_id'], ['candidate_profiles.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['interviewer_id'], ['interviewer_profiles.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider_order_id'),
    )
    op.create_index('ix_payments_booking_id', 'payments', ['booking_id'], unique=False)
    op.create_index('ix_payments_candidate_id', 'payments', ['candidate_id'], unique=False)
    op.create_index('ix_payments_interviewer_id', 'payments', ['interviewer_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    # At most one non-failed payment per booking
    op.create_index(
        'uq_payments_active_booking', 'payments', ['booking_id'], unique=True,
        postgresql_where=sa.text("status != 'failed'"),
    )

    op.create_table('approval_requests',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('interviewer_id', sa.UUID(), nullable=False),
        sa.Column('requested_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', approval_status, nullable=False),
        sa.Column('decided_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('decided_by', sa.UUID(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['interviewer_id'], ['interviewer_profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approval_requests_interviewer_id', 'approval_requests', ['interviewer_id'], unique=False)
    op.create_index('ix_approval_requests_status', 'approval_requests', ['status'], unique=False)
    op.create_index(
        'uq_approval_requests_pending_interviewer', 'approval_requests', ['interviewer_id'],
        unique=True, postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_table('approval_requests')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('slots')
    op.drop_table('interviewer_profiles')
    op.drop_table('candidate_profiles')
    op.drop_table('users')

    for enum in (
        approval_status, payment_status, booking_status, slot_status,
        verification_status, user_role,
    ):
        enum.drop(op.get_bind(), checkfirst=True)
