"""Stripe webhook route handler."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from api.dependencies import get_confirmation_service
from api.middleware.signature_validation import validate_stripe_signature
from api.models.stripe_webhook import StripePaymentIntentEvent
from marketplace.errors import NotFoundError
from marketplace.services.payment_confirmation_service import PaymentConfirmationService

logger = logging.getLogger(__name__)

router = APIRouter()

SUCCEEDED = "payment_intent.succeeded"
FAILED = "payment_intent.payment_failed"
CANCELED = "payment_intent.canceled"

# Stripe event types we process
PROCESSED_EVENT_TYPES = {SUCCEEDED, FAILED, CANCELED}


@router.post("/stripe")
async def receive_stripe_webhook(
    event: Annotated[dict[str, Any], Depends(validate_stripe_signature)],
    service: Annotated[PaymentConfirmationService, Depends(get_confirmation_service)],
) -> JSONResponse:
    """
    Receive and apply Stripe PaymentIntent outcomes.

    Only processes payment_intent.succeeded, payment_intent.payment_failed and
    payment_intent.canceled. Storage failures propagate as 503 so Stripe
    redelivers; outcomes are idempotent, so redelivery is safe.

    Returns:
        JSONResponse with 200 OK status

    Raises:
        HTTPException: 400 if the PaymentIntent id is missing
    """
    event_type = event.get("type")

    if event_type not in PROCESSED_EVENT_TYPES:
        logger.debug(f"Ignoring Stripe event type: {event_type}")
        return JSONResponse(status_code=200, content={"status": "ignored"})

    intent = StripePaymentIntentEvent.from_event(event)
    if not intent.order_id:
        logger.error(f"Missing PaymentIntent id in Stripe event {event.get('id')}")
        raise HTTPException(status_code=400, detail="Missing PaymentIntent id")

    try:
        if event_type == SUCCEEDED:
            outcome = await service.confirm_payment(
                intent.order_id,
                provider_payment_id=intent.charge_id,
                booking_id=intent.booking_id,
            )
        else:
            reason = intent.failure_reason or ("canceled" if event_type == CANCELED else None)
            outcome = await service.fail_payment(
                intent.order_id, reason=reason, booking_id=intent.booking_id
            )
    except NotFoundError:
        # Not one of ours (shared Stripe account); acknowledge so Stripe stops retrying
        logger.warning(
            f"Stripe event {event.get('id')} for unknown PaymentIntent {intent.order_id}"
        )
        return JSONResponse(status_code=200, content={"status": "unknown_order"})

    logger.info(
        f"Stripe event applied: type={event_type}, order_id={intent.order_id}, "
        f"payment_status={outcome.payment_status.value}, changed={outcome.changed}",
        extra={"booking_id": str(outcome.booking_id), "payment_id": str(outcome.payment_id)},
    )

    return JSONResponse(
        status_code=200,
        content={
            "status": "processed" if outcome.changed else "duplicate",
            "booking_id": str(outcome.booking_id),
            "payment_status": outcome.payment_status.value,
        },
    )
