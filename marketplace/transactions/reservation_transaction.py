"""
Reservation transaction: candidate books a slot and receives a payment order.

Flow of ReservationCoordinator.reserve_slot():
- Validate actor and candidate profile (read-only, no writes)
- Pre-check the slot outside the transaction (fail fast)
- One unit of work: re-read slot, create Booking + Payment, claim the slot
  with a compare-and-swap on (status, version), link payment, commit
- AFTER commit: create the provider order (idempotency key = booking id)
- Record the provider order id in a separate short transaction

The database is the source of truth and is committed FIRST. A gateway failure
after commit leaves the booking pending (the expiration worker releases the
slot if no payment arrives) and is reported as GatewayOrderFailedError with the
booking id, so the client can call retry_gateway_order() with the same key.

Zero-price slots never reach the gateway: payment, booking and slot are
settled to completed / confirmed / booked inside the same transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import (
    Booking,
    BookingStatus,
    CandidateProfile,
    Payment,
    PaymentStatus,
    SlotStatus,
    utcnow,
)
from database.stores import BookingStore, PaymentStore, SlotStore
from marketplace.errors import (
    GatewayOrderFailedError,
    NotFoundError,
    ReservationFailedError,
    SlotUnavailableError,
)
from marketplace.fees import compute_fee_split, to_minor_units
from marketplace.services.directory_service import CandidateDirectory
from marketplace.state import ensure_transition
from marketplace.transactions.unit_of_work import StoreError, UnitOfWork
from marketplace.validators import (
    validate_actor,
    validate_candidate_profile,
    validate_slot_reservable,
)
from shared.config import get_settings
from shared.payment_gateway import GatewayOrder, PaymentGateway, validate_order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationResult:
    """Outcome of a successful reservation (or order retry)."""

    booking_id: UUID
    payment_id: UUID
    slot_id: UUID
    booking_status: BookingStatus
    amount: Decimal
    platform_fee: Decimal
    interviewer_amount: Decimal
    currency: str
    scheduled_start_time: datetime
    expires_at: datetime | None
    provider: str
    gateway_order: GatewayOrder | None = None
    publishable_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        order = None
        if self.gateway_order is not None:
            order = {
                "order_id": self.gateway_order.order_id,
                "amount": self.gateway_order.amount,
                "currency": self.gateway_order.currency,
                "client_secret": self.gateway_order.client_secret,
                "status": self.gateway_order.status,
                "provider": self.provider,
                "publishable_key": self.publishable_key,
            }
        return {
            "booking_id": str(self.booking_id),
            "payment_id": str(self.payment_id),
            "slot_id": str(self.slot_id),
            "status": self.booking_status.value,
            "amount": str(self.amount),
            "platform_fee": str(self.platform_fee),
            "interviewer_amount": str(self.interviewer_amount),
            "currency": self.currency,
            "scheduled_start_time": self.scheduled_start_time.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "payment_order": order,
        }


@dataclass
class _Committed:
    booking_id: UUID
    payment_id: UUID
    slot_id: UUID
    booking_status: BookingStatus
    amount: Decimal
    platform_fee: Decimal
    interviewer_amount: Decimal
    currency: str
    scheduled_start_time: datetime
    expires_at: datetime | None


class ReservationCoordinator:
    """
    Coordinates slot reservation across the database and the payment gateway.

    No in-process locks: concurrent reservations of the same slot (from any
    number of workers or processes) are arbitrated by the slot compare-and-swap
    and the partial unique index on active bookings. Exactly one wins; every
    other caller gets SlotUnavailableError.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        gateway: PaymentGateway | None = None,
        directory: CandidateDirectory | None = None,
        fee_rate: Decimal | None = None,
        pending_ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = get_settings()
        if session_factory is None:
            from database.connection import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        if gateway is None:
            from shared.stripe_client import StripePaymentGateway

            gateway = StripePaymentGateway()

        self._session_factory = session_factory
        self.gateway = gateway
        self.directory = directory or CandidateDirectory(session_factory)
        self.fee_rate = fee_rate if fee_rate is not None else settings.PLATFORM_FEE_RATE
        self.pending_ttl = pending_ttl or timedelta(minutes=settings.PENDING_PAYMENT_TTL_MINUTES)
        self._clock = clock

    async def reserve_slot(self, candidate_user_id: UUID | None, slot_id: UUID) -> ReservationResult:
        """
        Reserve a slot for a candidate and open a payment order for it.

        Args:
            candidate_user_id: Authenticated user id (None if unauthenticated)
            slot_id: Slot to reserve

        Returns:
            ReservationResult with the pending booking, its payment and the
            provider order (no order for zero-price slots, which are confirmed)

        Raises:
            UnauthorizedError: No authenticated user
            ProfileIncompleteError: Candidate profile missing or incomplete
            NotFoundError: Slot does not exist
            SlotUnavailableError: Slot not available, or lost to a concurrent reservation
            ReservationFailedError: Storage failure; nothing was committed
            GatewayOrderFailedError: Committed, but the provider order could not be created
        """
        trace_id = f"{candidate_user_id}_{slot_id}"
        logger.info(
            f"[{trace_id}] Starting reservation",
            extra={"candidate_user_id": str(candidate_user_id), "slot_id": str(slot_id)},
        )

        validate_actor(candidate_user_id)
        profile = await self.directory.find_profile_by_user_id(candidate_user_id)
        validate_candidate_profile(profile, candidate_user_id)

        await self._precheck_slot(slot_id)

        try:
            async with UnitOfWork(self._session_factory) as uow:
                committed = await self._reserve_in_unit_of_work(uow, profile, slot_id, trace_id)
                await uow.commit()
        except StoreError as e:
            if e.conflict:
                logger.info(f"[{trace_id}] Lost reservation race at storage level: {e}")
                raise SlotUnavailableError(
                    "Slot was reserved by another candidate",
                    details={"slot_id": str(slot_id)},
                ) from e
            logger.error(f"[{trace_id}] Reservation transaction failed: {e}", exc_info=True)
            raise ReservationFailedError(
                "Reservation could not be saved. Please try again.",
                details={"slot_id": str(slot_id)},
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"[{trace_id}] Database error during reservation: {e}", exc_info=True)
            raise ReservationFailedError(
                "Reservation could not be saved. Please try again.",
                details={"slot_id": str(slot_id)},
            ) from e

        logger.info(
            f"[{trace_id}] Reservation committed: booking {committed.booking_id} "
            f"({committed.booking_status.value}), {committed.amount} {committed.currency}",
            extra={
                "slot_id": str(slot_id),
                "booking_id": str(committed.booking_id),
                "payment_id": str(committed.payment_id),
            },
        )

        if committed.amount == 0:
            return self._result(committed)

        # ================================================================
        # AFTER commit: provider order (the booking stays committed either way)
        # ================================================================
        order = await self._create_gateway_order(committed, trace_id)
        await self._record_order_id(committed.payment_id, order.order_id, trace_id)

        return self._result(committed, order)

    async def retry_gateway_order(
        self, candidate_user_id: UUID | None, booking_id: UUID
    ) -> ReservationResult:
        """
        Re-request the provider order of a pending booking.

        Uses the booking id as idempotency key again, so a retry after a lost
        response returns the order the provider already created.

        Raises:
            UnauthorizedError: No authenticated user
            NotFoundError: Booking missing or owned by another candidate
            SlotUnavailableError: Booking is no longer awaiting payment
            GatewayOrderFailedError: Provider still failing
        """
        trace_id = f"{candidate_user_id}_{booking_id}"
        validate_actor(candidate_user_id)
        profile = await self.directory.find_profile_by_user_id(candidate_user_id)

        async with self._session_factory() as session:
            booking = await BookingStore(session).get(booking_id)
            payment = await PaymentStore(session).get_active_for_booking(booking_id)

        if profile is None or booking is None or booking.candidate_id != profile.id:
            raise NotFoundError("Booking not found", details={"booking_id": str(booking_id)})

        if (
            booking.status != BookingStatus.PENDING
            or payment is None
            or payment.status != PaymentStatus.PENDING
        ):
            raise SlotUnavailableError(
                "Booking is no longer awaiting payment",
                details={"booking_id": str(booking_id), "status": booking.status.value},
            )

        committed = _Committed(
            booking_id=booking.id,
            payment_id=payment.id,
            slot_id=booking.slot_id,
            booking_status=booking.status,
            amount=payment.amount,
            platform_fee=payment.platform_fee,
            interviewer_amount=payment.interviewer_amount,
            currency=payment.currency,
            scheduled_start_time=booking.scheduled_start_time,
            expires_at=booking.expires_at,
        )

        logger.info(f"[{trace_id}] Retrying provider order", extra={"booking_id": str(booking_id)})
        order = await self._create_gateway_order(committed, trace_id)

        if payment.provider_order_id is None:
            await self._record_order_id(payment.id, order.order_id, trace_id)
        elif payment.provider_order_id != order.order_id:
            logger.error(
                f"[{trace_id}] Provider returned order {order.order_id} but payment already "
                f"references {payment.provider_order_id}",
                extra={"payment_id": str(payment.id)},
            )

        return self._result(committed, order)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _precheck_slot(self, slot_id: UUID) -> None:
        async with self._session_factory() as session:
            slot = await SlotStore(session).get(slot_id)
            validate_slot_reservable(slot, slot_id)

    async def _reserve_in_unit_of_work(
        self,
        uow: UnitOfWork,
        profile: CandidateProfile,
        slot_id: UUID,
        trace_id: str,
    ) -> _Committed:
        # Re-read: the pre-check result may be stale by now
        slot = validate_slot_reservable(await uow.slots.get_for_update(slot_id), slot_id)
        split = compute_fee_split(slot.price, slot.currency, self.fee_rate)
        now = self._clock()

        booking = uow.bookings.add(
            Booking(
                id=uuid4(),
                slot_id=slot.id,
                interviewer_id=slot.interviewer_id,
                candidate_id=profile.id,
                booked_at=now,
                scheduled_start_time=slot.start_time,
                status=BookingStatus.PENDING,
                price=split.amount,
                currency=split.currency,
                expires_at=now + self.pending_ttl,
            )
        )
        await uow.flush()

        payment = uow.payments.add(
            Payment(
                id=uuid4(),
                booking_id=booking.id,
                candidate_id=profile.id,
                interviewer_id=slot.interviewer_id,
                amount=split.amount,
                currency=split.currency,
                platform_fee=split.platform_fee,
                interviewer_amount=split.interviewer_amount,
                provider=self.gateway.provider_name,
                status=PaymentStatus.PENDING,
            )
        )
        await uow.flush()

        if not await uow.slots.claim(slot.id, slot.version, booking.id):
            logger.info(f"[{trace_id}] Slot changed before claim, aborting")
            raise SlotUnavailableError(
                "Slot was reserved by another candidate",
                details={"slot_id": str(slot_id)},
            )

        booking.payment_id = payment.id

        if split.amount == 0:
            ensure_transition(payment.status, PaymentStatus.COMPLETED, "payment")
            ensure_transition(booking.status, BookingStatus.CONFIRMED, "booking")
            payment.status = PaymentStatus.COMPLETED
            booking.status = BookingStatus.CONFIRMED
            booking.expires_at = None
            if not await uow.slots.transition_held_slot(
                slot.id, booking.id, SlotStatus.PENDING_PAYMENT, SlotStatus.BOOKED
            ):
                raise SlotUnavailableError(
                    "Slot was reserved by another candidate",
                    details={"slot_id": str(slot_id)},
                )
            logger.info(f"[{trace_id}] Zero-price slot, booking confirmed without payment order")

        await uow.flush()

        return _Committed(
            booking_id=booking.id,
            payment_id=payment.id,
            slot_id=slot.id,
            booking_status=booking.status,
            amount=split.amount,
            platform_fee=split.platform_fee,
            interviewer_amount=split.interviewer_amount,
            currency=split.currency,
            scheduled_start_time=slot.start_time,
            expires_at=booking.expires_at,
        )

    async def _create_gateway_order(self, committed: _Committed, trace_id: str) -> GatewayOrder:
        amount_minor = to_minor_units(committed.amount, committed.currency)
        try:
            order = await self.gateway.create_order(
                amount_minor, committed.currency, idempotency_key=str(committed.booking_id)
            )
            validate_order(order, amount_minor, committed.currency, self.gateway.provider_name)
        except Exception as e:
            logger.error(
                f"[{trace_id}] Provider order failed for booking {committed.booking_id}: "
                f"{type(e).__name__}: {e}",
                extra={
                    "booking_id": str(committed.booking_id),
                    "payment_id": str(committed.payment_id),
                },
            )
            raise GatewayOrderFailedError(
                "Booking reserved but the payment order could not be created. Retry payment.",
                booking_id=committed.booking_id,
                payment_id=committed.payment_id,
                details={"reason": f"{type(e).__name__}: {e}"},
            ) from e

        logger.info(
            f"[{trace_id}] Provider order {order.order_id} created",
            extra={"booking_id": str(committed.booking_id)},
        )
        return order

    async def _record_order_id(self, payment_id: UUID, order_id: str, trace_id: str) -> bool:
        """
        Store the provider order id on the payment.

        A failure here is logged, not raised: webhooks still find the payment
        through the booking id in the order metadata.
        """
        try:
            async with UnitOfWork(self._session_factory) as uow:
                stored = await uow.payments.set_provider_order_id(payment_id, order_id)
                await uow.commit()
        except (StoreError, SQLAlchemyError) as e:
            logger.error(
                f"[{trace_id}] Could not record provider order {order_id}: {e}",
                extra={"payment_id": str(payment_id)},
            )
            return False

        if not stored:
            logger.warning(
                f"[{trace_id}] Payment already had a provider order id, kept existing",
                extra={"payment_id": str(payment_id)},
            )
        return stored

    def _result(self, committed: _Committed, order: GatewayOrder | None = None) -> ReservationResult:
        return ReservationResult(
            booking_id=committed.booking_id,
            payment_id=committed.payment_id,
            slot_id=committed.slot_id,
            booking_status=committed.booking_status,
            amount=committed.amount,
            platform_fee=committed.platform_fee,
            interviewer_amount=committed.interviewer_amount,
            currency=committed.currency,
            scheduled_start_time=committed.scheduled_start_time,
            expires_at=committed.expires_at,
            provider=self.gateway.provider_name,
            gateway_order=order,
            publishable_key=self.gateway.publishable_key if order else None,
        )
