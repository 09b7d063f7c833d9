"""
Typed errors raised by the reservation core.

Every error carries a stable ``error_code`` and the HTTP status the API layer
renders it with, so callers can tell a retryable infrastructure failure
(RESERVATION_FAILED) from a post-commit payment setup failure
(GATEWAY_ORDER_FAILED) and never create a duplicate booking by retrying the
wrong operation.
"""

from typing import Any
from uuid import UUID


class MarketplaceError(Exception):
    """
    Base class for marketplace errors.

    Attributes:
        message: Human-readable error message
        details: Extra structured context returned to the caller
    """

    error_code = "MARKETPLACE_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "error_message": self.message,
            "details": self.details,
        }


class UnauthorizedError(MarketplaceError):
    """Caller is not authenticated."""

    error_code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(MarketplaceError):
    """Caller is authenticated but lacks the required role."""

    error_code = "FORBIDDEN"
    status_code = 403


class ProfileIncompleteError(MarketplaceError):
    """Candidate has no completed profile. Not retryable until the profile is completed."""

    error_code = "PROFILE_INCOMPLETE"
    status_code = 422


class NotFoundError(MarketplaceError):
    """Referenced record does not exist."""

    error_code = "NOT_FOUND"
    status_code = 404


class SlotUnavailableError(MarketplaceError):
    """Slot exists but is not reservable. Caller should re-query availability."""

    error_code = "SLOT_UNAVAILABLE"
    status_code = 409


class AlreadyProcessedError(MarketplaceError):
    """Approval request (or verification) already reached a terminal state."""

    error_code = "ALREADY_PROCESSED"
    status_code = 409


class InvalidStatusTransitionError(MarketplaceError):
    """A record was asked to move to a status its lifecycle does not allow."""

    error_code = "INVALID_STATUS_TRANSITION"
    status_code = 409


class ReservationFailedError(MarketplaceError):
    """Transaction aborted (conflict, I/O). Nothing was persisted; safe to retry."""

    error_code = "RESERVATION_FAILED"
    status_code = 503


class GatewayOrderFailedError(MarketplaceError):
    """
    Provider order creation failed after the reservation committed.

    The booking and payment stay pending; the caller resumes payment with
    the order-retry operation instead of booking again.
    """

    error_code = "GATEWAY_ORDER_FAILED"
    status_code = 502

    def __init__(
        self,
        message: str,
        booking_id: UUID,
        payment_id: UUID,
        details: dict[str, Any] | None = None,
    ):
        self.booking_id = booking_id
        self.payment_id = payment_id
        merged = {"booking_id": str(booking_id), "payment_id": str(payment_id)}
        merged.update(details or {})
        super().__init__(message, merged)
