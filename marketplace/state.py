"""
Status lifecycles for slots, bookings, payments and approval requests.

Each table maps a status to the statuses it may move to. Slots move forward
along available -> pending_payment -> booked -> completed; the only backward
edge is the cancellation fallback pending_payment -> available, taken when a
payment fails or a reservation expires.
"""

from enum import Enum

from database.models import ApprovalStatus, BookingStatus, PaymentStatus, SlotStatus
from marketplace.errors import InvalidStatusTransitionError

SLOT_TRANSITIONS: dict[SlotStatus, frozenset[SlotStatus]] = {
    SlotStatus.AVAILABLE: frozenset({SlotStatus.PENDING_PAYMENT, SlotStatus.CANCELLED}),
    SlotStatus.PENDING_PAYMENT: frozenset({
        SlotStatus.BOOKED,
        SlotStatus.AVAILABLE,
        SlotStatus.CANCELLED,
    }),
    SlotStatus.BOOKED: frozenset({SlotStatus.COMPLETED, SlotStatus.CANCELLED}),
    SlotStatus.COMPLETED: frozenset(),
    SlotStatus.CANCELLED: frozenset(),
}

BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.RESCHEDULED: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
    }),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    # Late capture of an expired order; refunded right after
    PaymentStatus.FAILED: frozenset({PaymentStatus.COMPLETED}),
    PaymentStatus.REFUNDED: frozenset(),
}

APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

_TABLES: dict[type[Enum], dict] = {
    SlotStatus: SLOT_TRANSITIONS,
    BookingStatus: BOOKING_TRANSITIONS,
    PaymentStatus: PAYMENT_TRANSITIONS,
    ApprovalStatus: APPROVAL_TRANSITIONS,
}


def can_transition(current: Enum, target: Enum) -> bool:
    """Whether ``current`` may move to ``target`` in its lifecycle table."""
    table = _TABLES[type(current)]
    return target in table[current]


def ensure_transition(current: Enum, target: Enum, entity: str) -> None:
    """
    Validate a status change.

    Raises:
        InvalidStatusTransitionError: If the lifecycle forbids it
    """
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(
            f"{entity} cannot move from '{current.value}' to '{target.value}'",
            details={"entity": entity, "from": current.value, "to": target.value},
        )
