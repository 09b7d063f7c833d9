"""Stripe webhook signature validation dependency."""

import logging
from typing import Any, cast

import stripe
from fastapi import HTTPException, Request
from stripe import SignatureVerificationError

from shared.config import get_settings

logger = logging.getLogger(__name__)


async def validate_stripe_signature(request: Request) -> dict[str, Any]:
    """
    Verify the Stripe-Signature header and parse the event.

    Args:
        request: FastAPI request object

    Returns:
        Parsed Stripe event

    Raises:
        HTTPException: 401 if the signature is missing or invalid,
            400 if the body is not a valid event,
            503 if no webhook secret is configured
    """
    secret = get_settings().STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured, rejecting webhook")
        raise HTTPException(status_code=503, detail="Webhook endpoint not configured")

    signature_header: str | None = request.headers.get("Stripe-Signature")
    if not signature_header:
        logger.warning("Stripe webhook received without signature header")
        raise HTTPException(status_code=401, detail="Invalid Stripe signature")

    body = await request.body()

    try:
        event = stripe.Webhook.construct_event(
            payload=body,
            sig_header=signature_header,
            secret=secret,
        )
    except SignatureVerificationError as e:
        logger.warning(f"Stripe signature verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid Stripe signature") from e
    except ValueError as e:
        logger.warning(f"Stripe webhook body is not a valid event: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload") from e

    logger.debug(f"Stripe signature validated: event_type={event['type']}")
    return cast(dict[str, Any], event)
