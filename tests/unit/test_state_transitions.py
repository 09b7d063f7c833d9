"""
Unit tests for state.py - status lifecycles.
"""

import pytest

from database.models import ApprovalStatus, BookingStatus, PaymentStatus, SlotStatus
from marketplace.errors import InvalidStatusTransitionError
from marketplace.state import can_transition, ensure_transition


class TestSlotLifecycle:

    @pytest.mark.parametrize(
        "current,target",
        [
            (SlotStatus.AVAILABLE, SlotStatus.PENDING_PAYMENT),
            (SlotStatus.PENDING_PAYMENT, SlotStatus.BOOKED),
            (SlotStatus.PENDING_PAYMENT, SlotStatus.AVAILABLE),
            (SlotStatus.BOOKED, SlotStatus.COMPLETED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (SlotStatus.AVAILABLE, SlotStatus.BOOKED),
            (SlotStatus.BOOKED, SlotStatus.AVAILABLE),
            (SlotStatus.BOOKED, SlotStatus.PENDING_PAYMENT),
            (SlotStatus.COMPLETED, SlotStatus.AVAILABLE),
        ],
    )
    def test_forbidden(self, current, target):
        assert not can_transition(current, target)


class TestBookingAndPaymentLifecycle:

    def test_pending_booking_confirms_or_cancels(self):
        assert can_transition(BookingStatus.PENDING, BookingStatus.CONFIRMED)
        assert can_transition(BookingStatus.PENDING, BookingStatus.CANCELLED)
        assert not can_transition(BookingStatus.CANCELLED, BookingStatus.CONFIRMED)

    def test_refund_only_after_completion(self):
        assert can_transition(PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)
        assert not can_transition(PaymentStatus.PENDING, PaymentStatus.REFUNDED)

    def test_failed_payment_may_still_complete(self):
        assert can_transition(PaymentStatus.FAILED, PaymentStatus.COMPLETED)
        assert not can_transition(PaymentStatus.FAILED, PaymentStatus.PENDING)


class TestEnsureTransition:

    def test_allowed_passes(self):
        ensure_transition(ApprovalStatus.PENDING, ApprovalStatus.APPROVED, "approval_request")

    def test_forbidden_raises_with_details(self):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            ensure_transition(ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, "approval_request")

        error = exc_info.value
        assert error.error_code == "INVALID_STATUS_TRANSITION"
        assert error.details == {"entity": "approval_request", "from": "approved", "to": "rejected"}
