"""
Record stores for slots, bookings, payments and approval requests.

Each store wraps one AsyncSession owned by a UnitOfWork (or a short read-only
session). Stores never commit; the unit of work does.

Slot status writes are compare-and-swap updates on (status, version): they
return False when another transaction changed the slot first, which is how
conflicting reservations are detected without in-process locks.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    ApprovalRequest,
    ApprovalStatus,
    Booking,
    BookingStatus,
    CandidateProfile,
    InterviewerProfile,
    Payment,
    PaymentStatus,
    Slot,
    SlotStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class SlotStore:
    """Reads and compare-and-swap writes on slots."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, slot_id: UUID) -> Slot | None:
        stmt = select(Slot).where(Slot.id == slot_id).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, slot_id: UUID) -> Slot | None:
        """
        Re-read a slot inside a transaction.

        Emits SELECT ... FOR UPDATE on PostgreSQL (ignored by SQLite). The
        version read here is the one the later compare-and-swap must match.
        """
        stmt = (
            select(Slot)
            .where(Slot.id == slot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self,
        slot_id: UUID,
        expected_status: SlotStatus,
        expected_version: int,
        new_status: SlotStatus,
        current_booking_id: UUID | None,
    ) -> bool:
        """
        Atomically move a slot from expected (status, version) to new_status.

        Args:
            slot_id: Slot UUID
            expected_status: Status the caller read
            expected_version: Version the caller read
            new_status: Target status
            current_booking_id: Booking holding the slot afterwards (None to clear)

        Returns:
            bool: True if exactly one row was updated, False if the slot changed
                underneath the caller (or does not exist)
        """
        stmt = (
            update(Slot)
            .where(
                Slot.id == slot_id,
                Slot.status == expected_status,
                Slot.version == expected_version,
            )
            .values(
                status=new_status,
                current_booking_id=current_booking_id,
                version=Slot.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        swapped = result.rowcount == 1

        if not swapped:
            logger.info(
                f"Slot compare-and-swap lost: {expected_status.value}@v{expected_version} "
                f"-> {new_status.value}",
                extra={"slot_id": str(slot_id)},
            )
        return swapped

    async def claim(self, slot_id: UUID, expected_version: int, booking_id: UUID) -> bool:
        """available@version -> pending_payment, held by booking_id."""
        return await self.compare_and_set_status(
            slot_id,
            expected_status=SlotStatus.AVAILABLE,
            expected_version=expected_version,
            new_status=SlotStatus.PENDING_PAYMENT,
            current_booking_id=booking_id,
        )

    async def transition_held_slot(
        self,
        slot_id: UUID,
        booking_id: UUID,
        expected_status: SlotStatus,
        new_status: SlotStatus,
    ) -> bool:
        """
        Move a slot held by booking_id, whatever its current version.

        Used by the confirmation callback and the expiration sweep, which know
        the holding booking but not the version the coordinator left behind.
        """
        new_holder = None if new_status == SlotStatus.AVAILABLE else booking_id
        stmt = (
            update(Slot)
            .where(
                Slot.id == slot_id,
                Slot.status == expected_status,
                Slot.current_booking_id == booking_id,
            )
            .values(
                status=new_status,
                current_booking_id=new_holder,
                version=Slot.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class BookingStore:
    """Booking records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, booking: Booking) -> Booking:
        self.session.add(booking)
        return booking

    async def get(self, booking_id: UUID) -> Booking | None:
        return await self.session.get(Booking, booking_id)

    async def get_for_update(self, booking_id: UUID) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_expired_pending(self, now: datetime, limit: int = 100) -> list[UUID]:
        """Ids of pending bookings whose payment deadline has passed."""
        stmt = (
            select(Booking.id)
            .where(
                Booking.status == BookingStatus.PENDING,
                Booking.expires_at.is_not(None),
                Booking.expires_at < now,
            )
            .order_by(Booking.expires_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class PaymentStore:
    """Payment records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, payment: Payment) -> Payment:
        self.session.add(payment)
        return payment

    async def get(self, payment_id: UUID) -> Payment | None:
        return await self.session.get(Payment, payment_id)

    async def get_by_provider_order_id(self, provider_order_id: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.provider_order_id == provider_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_for_booking(self, booking_id: UUID) -> Payment | None:
        """The single non-failed payment attempt of a booking, if any."""
        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking_id, Payment.status != PaymentStatus.FAILED)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest_unrecorded_for_booking(self, booking_id: UUID) -> Payment | None:
        """Newest payment of a booking with no provider order id, failed ones included."""
        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking_id, Payment.provider_order_id.is_(None))
            .order_by(Payment.created_at.desc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_provider_order_id(self, payment_id: UUID, provider_order_id: str) -> bool:
        """
        Record the provider order id once.

        Returns:
            bool: True if stored now, False if the payment already had one
        """
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.provider_order_id.is_(None))
            .values(
                provider_order_id=provider_order_id,
                order_attempts=Payment.order_attempts + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class ApprovalRequestStore:
    """Interviewer verification requests and the profiles they update."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, request: ApprovalRequest) -> ApprovalRequest:
        self.session.add(request)
        return request

    async def get_for_update(self, request_id: UUID) -> ApprovalRequest | None:
        stmt = (
            select(ApprovalRequest)
            .where(ApprovalRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def decide(
        self,
        request_id: UUID,
        new_status: ApprovalStatus,
        decided_by: UUID,
        reason: str | None = None,
    ) -> bool:
        """
        pending -> approved / rejected, only if still pending.

        Returns:
            bool: False if another admin decided first (or the request is gone)
        """
        now = utcnow()
        stmt = (
            update(ApprovalRequest)
            .where(
                ApprovalRequest.id == request_id,
                ApprovalRequest.status == ApprovalStatus.PENDING,
            )
            .values(
                status=new_status,
                decided_at=now,
                decided_by=decided_by,
                reason=reason,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_pending_for_interviewer(self, interviewer_id: UUID) -> ApprovalRequest | None:
        stmt = select(ApprovalRequest).where(
            ApprovalRequest.interviewer_id == interviewer_id,
            ApprovalRequest.status == ApprovalStatus.PENDING,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_interviewer(self, interviewer_id: UUID) -> InterviewerProfile | None:
        stmt = (
            select(InterviewerProfile)
            .where(InterviewerProfile.id == interviewer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_interviewer_by_user_id(self, user_id: UUID) -> InterviewerProfile | None:
        stmt = select(InterviewerProfile).where(InterviewerProfile.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


async def get_candidate_by_user_id(session: AsyncSession, user_id: UUID) -> CandidateProfile | None:
    stmt = select(CandidateProfile).where(CandidateProfile.user_id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
