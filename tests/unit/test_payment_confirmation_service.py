"""
Unit tests for payment_confirmation_service.py - webhook outcomes.

Tests coverage:
- confirm_payment(): pending -> completed/confirmed/booked, replay no-op
- fail_payment(): pending -> failed/cancelled, slot released
- Late capture after expiration is refunded
- Unknown order ids
- Orders whose id was never recorded are matched through the booking id
"""

from datetime import timedelta

import pytest

from database.models import (
    Booking,
    BookingStatus,
    Payment,
    PaymentStatus,
    Slot,
    SlotStatus,
    utcnow,
)
from marketplace.errors import GatewayOrderFailedError, NotFoundError
from marketplace.services.payment_confirmation_service import PaymentConfirmationService
from marketplace.transactions.reservation_transaction import ReservationCoordinator
from marketplace.workers.reservation_expiration import expire_stale_reservations
from shared.payment_gateway import PaymentGatewayError


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def coordinator(session_factory, gateway):
    return ReservationCoordinator(session_factory=session_factory, gateway=gateway)


@pytest.fixture
def service(session_factory, gateway):
    return PaymentConfirmationService(session_factory=session_factory, gateway=gateway)


@pytest.fixture
async def reservation(coordinator, seed):
    candidate = await seed.candidate()
    slot = await seed.slot()
    return await coordinator.reserve_slot(candidate.user_id, slot.id)


# ============================================================================
# confirm_payment
# ============================================================================


class TestConfirmPayment:

    async def test_confirms_booking_and_books_slot(self, service, seed, reservation):
        outcome = await service.confirm_payment(reservation.gateway_order.order_id, "ch_123")

        assert outcome.changed is True
        assert outcome.payment_status == PaymentStatus.COMPLETED
        assert outcome.booking_status == BookingStatus.CONFIRMED

        payment = await seed.get(Payment, reservation.payment_id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.provider_payment_id == "ch_123"

        booking = await seed.get(Booking, reservation.booking_id)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.expires_at is None

        slot = await seed.get(Slot, reservation.slot_id)
        assert slot.status == SlotStatus.BOOKED
        assert slot.current_booking_id == reservation.booking_id

    async def test_replay_is_noop(self, service, seed, reservation):
        order_id = reservation.gateway_order.order_id
        await service.confirm_payment(order_id, "ch_123")
        version_after_first = (await seed.get(Slot, reservation.slot_id)).version

        outcome = await service.confirm_payment(order_id, "ch_123")

        assert outcome.changed is False
        assert outcome.payment_status == PaymentStatus.COMPLETED
        assert (await seed.get(Slot, reservation.slot_id)).version == version_after_first

    async def test_unknown_order_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.confirm_payment("pi_unknown")

    async def test_unrecorded_order_matched_by_booking_id(self, coordinator, service, seed, gateway):
        candidate = await seed.candidate()
        slot = await seed.slot()
        gateway.fail_with = PaymentGatewayError("lost response", retryable=True)
        with pytest.raises(GatewayOrderFailedError) as exc_info:
            await coordinator.reserve_slot(candidate.user_id, slot.id)

        outcome = await service.confirm_payment(
            "pi_created_but_unrecorded", "ch_9", booking_id=exc_info.value.booking_id
        )

        assert outcome.booking_status == BookingStatus.CONFIRMED
        payment = await seed.get(Payment, exc_info.value.payment_id)
        assert payment.provider_order_id == "pi_created_but_unrecorded"

    async def test_late_capture_after_expiry_is_refunded(
        self, service, session_factory, gateway, seed, reservation
    ):
        order_id = reservation.gateway_order.order_id
        await expire_stale_reservations(
            now=utcnow() + timedelta(hours=1), session_factory=session_factory, gateway=gateway
        )

        outcome = await service.confirm_payment(order_id, "ch_late")

        assert outcome.payment_status == PaymentStatus.REFUNDED
        assert outcome.booking_status == BookingStatus.CANCELLED
        assert outcome.refund_id == "re_fake_0001"
        assert gateway.refunds == [(order_id, f"refund-{reservation.payment_id}")]

        payment = await seed.get(Payment, reservation.payment_id)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.provider_refund_id == "re_fake_0001"
        assert (await seed.get(Slot, reservation.slot_id)).status == SlotStatus.AVAILABLE

    async def test_late_capture_of_unrecorded_order_is_refunded(
        self, coordinator, service, session_factory, gateway, seed
    ):
        candidate = await seed.candidate()
        slot = await seed.slot()
        gateway.fail_with = PaymentGatewayError("lost response", retryable=True)
        with pytest.raises(GatewayOrderFailedError) as exc_info:
            await coordinator.reserve_slot(candidate.user_id, slot.id)
        await expire_stale_reservations(
            now=utcnow() + timedelta(hours=1), session_factory=session_factory, gateway=gateway
        )
        assert (await seed.get(Payment, exc_info.value.payment_id)).status == PaymentStatus.FAILED

        outcome = await service.confirm_payment(
            "pi_created_but_unrecorded", "ch_1", booking_id=exc_info.value.booking_id
        )

        assert outcome.payment_status == PaymentStatus.REFUNDED
        assert outcome.booking_status == BookingStatus.CANCELLED
        assert gateway.refunds == [
            ("pi_created_but_unrecorded", f"refund-{exc_info.value.payment_id}")
        ]
        payment = await seed.get(Payment, exc_info.value.payment_id)
        assert payment.provider_order_id == "pi_created_but_unrecorded"
        assert payment.status == PaymentStatus.REFUNDED
        assert (await seed.get(Slot, slot.id)).status == SlotStatus.AVAILABLE

    async def test_failed_refund_retried_on_replay(
        self, service, session_factory, gateway, seed, reservation
    ):
        order_id = reservation.gateway_order.order_id
        await expire_stale_reservations(
            now=utcnow() + timedelta(hours=1), session_factory=session_factory, gateway=gateway
        )
        gateway.refund_fail_with = PaymentGatewayError("Stripe down", retryable=True)

        first = await service.confirm_payment(order_id, "ch_late")
        assert first.payment_status == PaymentStatus.COMPLETED
        assert first.refund_id is None

        gateway.refund_fail_with = None
        second = await service.confirm_payment(order_id, "ch_late")

        assert second.payment_status == PaymentStatus.REFUNDED
        assert len(gateway.refunds) == 1


# ============================================================================
# fail_payment
# ============================================================================


class TestFailPayment:

    async def test_failure_cancels_booking_and_releases_slot(self, service, seed, reservation):
        outcome = await service.fail_payment(reservation.gateway_order.order_id, "card_declined")

        assert outcome.changed is True
        payment = await seed.get(Payment, reservation.payment_id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "card_declined"

        booking = await seed.get(Booking, reservation.booking_id)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancellation_reason == "card_declined"

        slot = await seed.get(Slot, reservation.slot_id)
        assert slot.status == SlotStatus.AVAILABLE
        assert slot.current_booking_id is None
        assert slot.version == 2

    async def test_released_slot_can_be_reserved_again(self, service, coordinator, seed, reservation):
        await service.fail_payment(reservation.gateway_order.order_id)
        other = await seed.candidate()

        again = await coordinator.reserve_slot(other.user_id, reservation.slot_id)

        assert again.booking_id != reservation.booking_id
        assert (await seed.get(Slot, reservation.slot_id)).current_booking_id == again.booking_id

    async def test_failure_replay_is_noop(self, service, reservation):
        order_id = reservation.gateway_order.order_id
        await service.fail_payment(order_id)

        outcome = await service.fail_payment(order_id)

        assert outcome.changed is False
        assert outcome.payment_status == PaymentStatus.FAILED

    async def test_failure_after_confirmation_ignored(self, service, seed, reservation):
        order_id = reservation.gateway_order.order_id
        await service.confirm_payment(order_id)

        outcome = await service.fail_payment(order_id, "late decline")

        assert outcome.changed is False
        assert (await seed.get(Booking, reservation.booking_id)).status == BookingStatus.CONFIRMED

    async def test_unknown_order_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.fail_payment("pi_unknown")
