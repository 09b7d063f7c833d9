"""Booking route handlers: reserve a slot, retry its payment order."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from api.dependencies import Actor, get_reservation_coordinator, require_candidate
from api.models.bookings import ReservationResponse
from marketplace.transactions.reservation_transaction import ReservationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["bookings"])


@router.post(
    "/slots/{slot_id}/book",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def book_slot(
    slot_id: UUID,
    actor: Annotated[Actor, Depends(require_candidate)],
    coordinator: Annotated[ReservationCoordinator, Depends(get_reservation_coordinator)],
) -> dict:
    """
    Reserve a slot for the acting candidate.

    Returns the pending booking with its payment order (201). Errors are
    rendered by the MarketplaceError handler; GATEWAY_ORDER_FAILED (502)
    carries booking_id/payment_id so the client can call the retry endpoint.
    """
    result = await coordinator.reserve_slot(actor.user_id, slot_id)
    return result.to_dict()


@router.post(
    "/bookings/{booking_id}/payment-order",
    response_model=ReservationResponse,
)
async def retry_payment_order(
    booking_id: UUID,
    actor: Annotated[Actor, Depends(require_candidate)],
    coordinator: Annotated[ReservationCoordinator, Depends(get_reservation_coordinator)],
) -> dict:
    """Re-request the payment order of a pending booking (same idempotency key)."""
    result = await coordinator.retry_gateway_order(actor.user_id, booking_id)
    return result.to_dict()
