"""
Payment confirmation service - applies provider payment outcomes.

Called by the Stripe webhook route for payment_intent.succeeded,
payment_intent.payment_failed and payment_intent.canceled. Providers deliver
webhooks at least once, so both operations are idempotent: replaying an
outcome that was already applied changes nothing.

Late captures (money arrives after the expiration worker released the slot)
are recorded as completed and refunded right after commit.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import BookingStatus, Payment, PaymentStatus, SlotStatus, utcnow
from marketplace.errors import NotFoundError, ReservationFailedError
from marketplace.state import ensure_transition
from marketplace.transactions.unit_of_work import StoreError, UnitOfWork
from shared.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentOutcome:
    """State of a payment after a webhook was applied."""

    payment_id: UUID
    booking_id: UUID
    payment_status: PaymentStatus
    booking_status: BookingStatus
    changed: bool
    refund_id: str | None = None


class PaymentConfirmationService:
    """Moves payment, booking and slot together when the provider reports an outcome."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        gateway: PaymentGateway | None = None,
    ):
        if session_factory is None:
            from database.connection import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        if gateway is None:
            from shared.stripe_client import StripePaymentGateway

            gateway = StripePaymentGateway()
        self._session_factory = session_factory
        self.gateway = gateway

    async def confirm_payment(
        self,
        provider_order_id: str,
        provider_payment_id: str | None = None,
        booking_id: UUID | None = None,
    ) -> PaymentOutcome:
        """
        Apply a successful payment.

        pending payment -> completed, pending booking -> confirmed and the held
        slot pending_payment -> booked, in one unit of work.

        Args:
            provider_order_id: Provider order (Stripe PaymentIntent id)
            provider_payment_id: Provider charge id, if the event carries one
            booking_id: Booking id from the order metadata, used when the order id
                was never recorded on the payment

        Returns:
            PaymentOutcome (changed=False for replays)

        Raises:
            NotFoundError: No payment for this order id
            ReservationFailedError: Storage failure, nothing applied
        """
        trace_id = provider_order_id
        late_capture = False

        try:
            async with UnitOfWork(self._session_factory) as uow:
                payment = await self._find_payment(uow, provider_order_id, booking_id)
                if payment is None:
                    raise NotFoundError(
                        "No payment for provider order",
                        details={"provider_order_id": provider_order_id},
                    )
                booking = await uow.bookings.get_for_update(payment.booking_id)

                if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
                    outcome = PaymentOutcome(
                        payment_id=payment.id,
                        booking_id=booking.id,
                        payment_status=payment.status,
                        booking_status=booking.status,
                        changed=False,
                        refund_id=payment.provider_refund_id,
                    )
                    # A replay retries a late-capture refund that did not go through
                    late_capture = (
                        payment.status == PaymentStatus.COMPLETED
                        and booking.status == BookingStatus.CANCELLED
                        and payment.provider_refund_id is None
                    )
                    if not late_capture:
                        logger.info(
                            f"[{trace_id}] Payment already {payment.status.value}, skipping",
                            extra={"payment_id": str(payment.id)},
                        )
                        return outcome
                else:
                    ensure_transition(payment.status, PaymentStatus.COMPLETED, "payment")
                    payment.status = PaymentStatus.COMPLETED
                    payment.provider_payment_id = provider_payment_id or payment.provider_payment_id

                    if booking.status == BookingStatus.PENDING:
                        ensure_transition(booking.status, BookingStatus.CONFIRMED, "booking")
                        booking.status = BookingStatus.CONFIRMED
                        booking.expires_at = None
                        slot_booked = await uow.slots.transition_held_slot(
                            booking.slot_id,
                            booking.id,
                            expected_status=SlotStatus.PENDING_PAYMENT,
                            new_status=SlotStatus.BOOKED,
                        )
                        if not slot_booked:
                            logger.error(
                                f"[{trace_id}] Slot {booking.slot_id} not held by booking {booking.id}",
                                extra={"slot_id": str(booking.slot_id), "booking_id": str(booking.id)},
                            )
                            raise ReservationFailedError(
                                "Slot is not held by this booking",
                                details={"booking_id": str(booking.id)},
                            )
                    else:
                        # Reservation released before the money arrived
                        late_capture = True
                        payment.failure_reason = f"late capture, booking {booking.status.value}"
                        logger.warning(
                            f"[{trace_id}] Payment captured for {booking.status.value} booking, "
                            f"will refund",
                            extra={"booking_id": str(booking.id), "payment_id": str(payment.id)},
                        )

                    await uow.commit()
                    outcome = PaymentOutcome(
                        payment_id=payment.id,
                        booking_id=booking.id,
                        payment_status=payment.status,
                        booking_status=booking.status,
                        changed=True,
                    )
        except (StoreError, SQLAlchemyError) as e:
            logger.error(f"[{trace_id}] Payment confirmation failed: {e}", exc_info=True)
            raise ReservationFailedError(
                "Payment confirmation could not be saved",
                details={"provider_order_id": provider_order_id},
            ) from e

        if not late_capture:
            logger.info(
                f"[{trace_id}] Booking {outcome.booking_id} confirmed",
                extra={"booking_id": str(outcome.booking_id), "payment_id": str(outcome.payment_id)},
            )
            return outcome

        return await self._refund_late_capture(outcome, provider_order_id)

    async def fail_payment(
        self,
        provider_order_id: str,
        reason: str | None = None,
        booking_id: UUID | None = None,
    ) -> PaymentOutcome:
        """
        Apply a failed or cancelled payment.

        pending payment -> failed, pending booking -> cancelled and the held
        slot pending_payment -> available (version bumped, holder cleared).

        Raises:
            NotFoundError: No payment for this order id
            ReservationFailedError: Storage failure, nothing applied
        """
        trace_id = provider_order_id
        reason = reason or "payment_failed"

        try:
            async with UnitOfWork(self._session_factory) as uow:
                payment = await self._find_payment(uow, provider_order_id, booking_id)
                if payment is None:
                    raise NotFoundError(
                        "No payment for provider order",
                        details={"provider_order_id": provider_order_id},
                    )
                booking = await uow.bookings.get_for_update(payment.booking_id)

                if payment.status != PaymentStatus.PENDING:
                    logger.info(
                        f"[{trace_id}] Payment already {payment.status.value}, ignoring failure",
                        extra={"payment_id": str(payment.id)},
                    )
                    return PaymentOutcome(
                        payment_id=payment.id,
                        booking_id=booking.id,
                        payment_status=payment.status,
                        booking_status=booking.status,
                        changed=False,
                    )

                payment.status = PaymentStatus.FAILED
                payment.failure_reason = reason

                if booking.status == BookingStatus.PENDING:
                    ensure_transition(booking.status, BookingStatus.CANCELLED, "booking")
                    booking.status = BookingStatus.CANCELLED
                    booking.cancellation_reason = reason
                    booking.cancelled_at = utcnow()
                    released = await uow.slots.transition_held_slot(
                        booking.slot_id,
                        booking.id,
                        expected_status=SlotStatus.PENDING_PAYMENT,
                        new_status=SlotStatus.AVAILABLE,
                    )
                    if not released:
                        logger.warning(
                            f"[{trace_id}] Slot {booking.slot_id} was not held by booking {booking.id}",
                            extra={"slot_id": str(booking.slot_id)},
                        )

                await uow.commit()
                outcome = PaymentOutcome(
                    payment_id=payment.id,
                    booking_id=booking.id,
                    payment_status=payment.status,
                    booking_status=booking.status,
                    changed=True,
                )
        except (StoreError, SQLAlchemyError) as e:
            logger.error(f"[{trace_id}] Payment failure handling failed: {e}", exc_info=True)
            raise ReservationFailedError(
                "Payment failure could not be saved",
                details={"provider_order_id": provider_order_id},
            ) from e

        logger.info(
            f"[{trace_id}] Payment failed ({reason}), booking {outcome.booking_id} cancelled "
            f"and slot released",
            extra={"booking_id": str(outcome.booking_id), "payment_id": str(outcome.payment_id)},
        )
        return outcome

    async def _refund_late_capture(self, outcome: PaymentOutcome, provider_order_id: str) -> PaymentOutcome:
        trace_id = provider_order_id
        try:
            refund_id = await self.gateway.refund_payment(
                provider_order_id, idempotency_key=f"refund-{outcome.payment_id}"
            )
        except Exception as e:
            # Stays completed with no refund id; a webhook replay retries the refund
            logger.error(
                f"[{trace_id}] Refund of late capture failed, manual refund required: "
                f"{type(e).__name__}: {e}",
                extra={"payment_id": str(outcome.payment_id), "booking_id": str(outcome.booking_id)},
            )
            return outcome

        try:
            async with UnitOfWork(self._session_factory) as uow:
                payment = await uow.payments.get(outcome.payment_id)
                ensure_transition(payment.status, PaymentStatus.REFUNDED, "payment")
                payment.status = PaymentStatus.REFUNDED
                payment.provider_refund_id = refund_id
                await uow.commit()
        except (StoreError, SQLAlchemyError) as e:
            logger.error(
                f"[{trace_id}] Refund {refund_id} issued but not recorded: {e}",
                extra={"payment_id": str(outcome.payment_id)},
            )
            return outcome

        logger.info(
            f"[{trace_id}] Late capture refunded ({refund_id})",
            extra={"payment_id": str(outcome.payment_id)},
        )
        return PaymentOutcome(
            payment_id=outcome.payment_id,
            booking_id=outcome.booking_id,
            payment_status=PaymentStatus.REFUNDED,
            booking_status=outcome.booking_status,
            changed=True,
            refund_id=refund_id,
        )

    async def _find_payment(
        self, uow: UnitOfWork, provider_order_id: str, booking_id: UUID | None
    ) -> Payment | None:
        payment = await uow.payments.get_by_provider_order_id(provider_order_id)
        if payment is not None or booking_id is None:
            return payment

        # Order created but its id never stored (recording failed after commit).
        # The expiration sweep may already have failed that payment.
        payment = await uow.payments.get_active_for_booking(booking_id)
        if payment is None:
            payment = await uow.payments.get_latest_unrecorded_for_booking(booking_id)
        if payment is None or payment.provider_order_id is not None:
            return None

        logger.warning(
            f"[{provider_order_id}] Attaching unrecorded provider order to payment {payment.id}",
            extra={"payment_id": str(payment.id), "booking_id": str(booking_id)},
        )
        await uow.payments.set_provider_order_id(payment.id, provider_order_id)
        payment.provider_order_id = provider_order_id
        return payment
