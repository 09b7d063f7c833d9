"""
Reservation Expiration Worker - Releases slots whose payment never arrived.

Runs periodically (every RESERVATION_EXPIRATION_CHECK_INTERVAL_SECONDS) and
expires pending bookings past their expires_at deadline.

Flow per expired booking (own unit of work, so one failure does not block the rest):
1. Booking: pending -> cancelled (reason payment_timeout)
2. Payment: pending -> failed (reason payment_timeout)
3. Slot: pending_payment -> available, holder cleared, version bumped
4. AFTER commit: cancel the provider order (best-effort, prevents late payments)

A payment that still lands after step 4 is refunded by the confirmation service.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import BookingStatus, PaymentStatus, SlotStatus, utcnow
from database.stores import BookingStore
from marketplace.state import ensure_transition
from marketplace.transactions.unit_of_work import StoreError, UnitOfWork
from shared.config import get_settings
from shared.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "payment_timeout"


@dataclass(frozen=True)
class ExpiredReservation:
    booking_id: UUID
    slot_id: UUID
    provider_order_id: str | None


async def expire_stale_reservations(
    now: datetime | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    gateway: PaymentGateway | None = None,
    batch_size: int = 100,
) -> int:
    """
    Expire pending bookings whose payment deadline passed before ``now``.

    Returns:
        int: Number of bookings expired in this run
    """
    now = now or utcnow()
    if session_factory is None:
        from database.connection import AsyncSessionLocal

        session_factory = AsyncSessionLocal

    async with session_factory() as session:
        booking_ids = await BookingStore(session).list_expired_pending(now, limit=batch_size)

    if not booking_ids:
        return 0

    logger.info(f"Found {len(booking_ids)} expired reservations")

    expired_count = 0
    for booking_id in booking_ids:
        try:
            expired = await expire_single_reservation(booking_id, now, session_factory)
        except (StoreError, SQLAlchemyError) as e:
            logger.error(
                f"Failed to expire booking {booking_id}: {e}",
                extra={"booking_id": str(booking_id)},
            )
            continue

        if expired is None:
            continue

        expired_count += 1
        if expired.provider_order_id:
            if gateway is None:
                from shared.stripe_client import StripePaymentGateway

                gateway = StripePaymentGateway()
            await _cancel_provider_order(expired.provider_order_id, booking_id, gateway)

    logger.info(f"Expiration run completed | expired_count={expired_count}")
    return expired_count


async def expire_single_reservation(
    booking_id: UUID,
    now: datetime,
    session_factory: async_sessionmaker[AsyncSession],
) -> ExpiredReservation | None:
    """
    Expire one booking.

    Returns:
        ExpiredReservation, or None if the booking was no longer pending
        (confirmed meanwhile)
    """
    async with UnitOfWork(session_factory) as uow:
        booking = await uow.bookings.get_for_update(booking_id)
        if booking is None or booking.status != BookingStatus.PENDING:
            logger.info(
                f"Booking {booking_id} no longer pending, skipping expiration",
                extra={"booking_id": str(booking_id)},
            )
            return None

        ensure_transition(booking.status, BookingStatus.CANCELLED, "booking")
        booking.status = BookingStatus.CANCELLED
        booking.cancellation_reason = TIMEOUT_REASON
        booking.cancelled_at = now

        order_id = None
        payment = await uow.payments.get_active_for_booking(booking.id)
        if payment is not None and payment.status == PaymentStatus.PENDING:
            payment.status = PaymentStatus.FAILED
            payment.failure_reason = TIMEOUT_REASON
            order_id = payment.provider_order_id

        released = await uow.slots.transition_held_slot(
            booking.slot_id,
            booking.id,
            expected_status=SlotStatus.PENDING_PAYMENT,
            new_status=SlotStatus.AVAILABLE,
        )
        if not released:
            logger.warning(
                f"Slot {booking.slot_id} was not held by expired booking {booking_id}",
                extra={"slot_id": str(booking.slot_id), "booking_id": str(booking_id)},
            )

        await uow.commit()

    logger.info(
        f"Reservation expired | booking_id={booking_id} | slot_id={booking.slot_id}",
        extra={"booking_id": str(booking_id), "slot_id": str(booking.slot_id)},
    )
    return ExpiredReservation(booking_id=booking_id, slot_id=booking.slot_id, provider_order_id=order_id)


async def _cancel_provider_order(order_id: str, booking_id: UUID, gateway: PaymentGateway) -> None:
    try:
        cancelled = await gateway.cancel_order(order_id)
    except Exception as e:
        # Log but don't fail the expiration; a late payment gets refunded
        logger.error(
            f"Error cancelling provider order {order_id}: {type(e).__name__}: {e}",
            extra={"booking_id": str(booking_id)},
        )
        return

    if cancelled:
        logger.info(f"Provider order {order_id} cancelled", extra={"booking_id": str(booking_id)})


async def run_expiration_worker(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    gateway: PaymentGateway | None = None,
) -> None:
    """
    Main worker loop - runs the expiration sweep every check interval.

    Runs until cancelled.
    """
    interval = get_settings().RESERVATION_EXPIRATION_CHECK_INTERVAL_SECONDS
    logger.info("Reservation expiration worker starting...")
    logger.info(f"Check interval: {interval} seconds")

    try:
        while True:
            try:
                expired_count = await expire_stale_reservations(
                    session_factory=session_factory, gateway=gateway
                )
                logger.debug(f"Expiration check completed | expired_count={expired_count}")
            except Exception as e:
                logger.exception(f"Error in expiration check cycle: {e}")

            await asyncio.sleep(interval)

    except asyncio.CancelledError:
        logger.info("Reservation expiration worker shutting down...")
        raise


if __name__ == "__main__":
    from shared.logging_config import configure_logging

    configure_logging()
    logger.info("Starting reservation expiration worker...")

    try:
        asyncio.run(run_expiration_worker())
    except KeyboardInterrupt:
        logger.info("Reservation expiration worker stopped by user")
