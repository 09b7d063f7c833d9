"""
Stripe API client for payment processing.

Implements the ``PaymentGateway`` contract on top of Stripe PaymentIntents:
- create_order: one PaymentIntent per booking, keyed by the booking id so a
  repeated call returns the same intent instead of charging twice
- cancel_order: cancel the intent when a reservation expires
- refund_payment: refund a payment captured after its reservation was released

All SDK calls are blocking, so they run in a worker thread behind the
payment gateway circuit breaker. Transient provider failures (network,
rate limit, timeout) are retried with exponential backoff via tenacity.
"""

import asyncio
import logging
from typing import Any

import stripe
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from shared.circuit_breaker import call_in_thread, get_circuit_breaker
from shared.config import get_settings
from shared.payment_gateway import GatewayOrder, PaymentGatewayError, validate_order

logger = logging.getLogger(__name__)

PROVIDER_NAME = "stripe"

# Card and request errors are the caller's problem, not a provider outage
payment_gateway_breaker = get_circuit_breaker(
    name="payment_gateway",
    fail_max=5,
    reset_timeout=30,
    exclude=[stripe.InvalidRequestError, stripe.CardError, stripe.IdempotencyError],
)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, PaymentGatewayError) and error.retryable


def _translate_error(error: Exception, operation: str) -> PaymentGatewayError:
    """Map Stripe SDK / breaker / timeout errors onto PaymentGatewayError."""
    if isinstance(error, (stripe.APIConnectionError, stripe.RateLimitError, TimeoutError)):
        return PaymentGatewayError(
            f"Transient Stripe error during {operation}: {error}",
            provider=PROVIDER_NAME,
            retryable=True,
        )
    return PaymentGatewayError(
        f"Stripe error during {operation}: {error}",
        provider=PROVIDER_NAME,
        retryable=False,
    )


class StripePaymentGateway:
    """Stripe-backed PaymentGateway."""

    provider_name = PROVIDER_NAME

    def __init__(self, api_key: str | None = None, publishable_key: str | None = None):
        settings = get_settings()
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.publishable_key = publishable_key or settings.STRIPE_PUBLISHABLE_KEY
        self.timeout_seconds = settings.GATEWAY_TIMEOUT_SECONDS
        stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES

    async def _call(self, operation: str, func, *args, **kwargs) -> Any:
        try:
            return await asyncio.wait_for(
                call_in_thread(payment_gateway_breaker, func, *args, **kwargs),
                timeout=self.timeout_seconds,
            )
        except PaymentGatewayError:
            raise
        except Exception as e:
            # CircuitBreakerError lands here too: fail fast, not retryable
            logger.error(f"Stripe {operation} failed: {type(e).__name__}: {e}")
            raise _translate_error(e, operation) from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def create_order(
        self, amount_minor_units: int, currency: str, idempotency_key: str
    ) -> GatewayOrder:
        """
        Create (or fetch, on replay) the PaymentIntent for a booking.

        Args:
            amount_minor_units: Amount in the currency's smallest unit (paise for INR)
            currency: ISO-4217 currency code
            idempotency_key: Booking id; Stripe returns the original intent for a
                repeated key instead of creating a second one

        Returns:
            GatewayOrder with the intent id, amount, currency and client secret

        Raises:
            PaymentGatewayError: If Stripe rejects the request, is unreachable,
                or echoes back a different amount/currency
        """
        logger.info(
            f"Creating Stripe PaymentIntent | amount={amount_minor_units} "
            f"{currency.upper()} | idempotency_key={idempotency_key}"
        )

        intent = await self._call(
            "create_order",
            stripe.PaymentIntent.create,
            api_key=self.api_key,
            amount=amount_minor_units,
            currency=currency.lower(),
            automatic_payment_methods={"enabled": True},
            metadata={"booking_id": idempotency_key, "source": "mock_interview_marketplace"},
            idempotency_key=idempotency_key,
        )

        order = GatewayOrder(
            order_id=intent["id"],
            amount=int(intent["amount"]),
            currency=str(intent["currency"]).upper(),
            client_secret=intent.get("client_secret"),
            status=intent.get("status"),
        )

        logger.info(f"PaymentIntent ready: {order.order_id} (status={order.status})")
        return validate_order(order, amount_minor_units, currency, provider=PROVIDER_NAME)

    async def cancel_order(self, order_id: str) -> bool:
        """
        Cancel a PaymentIntent so a late payment cannot capture a released slot.

        Returns:
            bool: True if cancelled, False if Stripe refused (already succeeded/cancelled)

        Raises:
            PaymentGatewayError: If Stripe is unreachable
        """
        logger.info(f"Cancelling Stripe PaymentIntent: {order_id}")
        try:
            await self._call(
                "cancel_order",
                stripe.PaymentIntent.cancel,
                order_id,
                api_key=self.api_key,
                idempotency_key=f"cancel-{order_id}",
            )
        except PaymentGatewayError as e:
            if isinstance(e.__cause__, stripe.InvalidRequestError):
                logger.warning(f"Could not cancel PaymentIntent {order_id}: {e}")
                return False
            raise

        logger.info(f"PaymentIntent cancelled successfully: {order_id}")
        return True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def refund_payment(self, order_id: str, idempotency_key: str) -> str:
        """
        Refund the full amount captured for a PaymentIntent.

        Returns:
            str: Stripe refund id

        Raises:
            PaymentGatewayError: If Stripe rejects or cannot process the refund
        """
        logger.info(f"Refunding Stripe PaymentIntent: {order_id}")

        refund = await self._call(
            "refund_payment",
            stripe.Refund.create,
            api_key=self.api_key,
            payment_intent=order_id,
            idempotency_key=idempotency_key,
        )

        logger.info(f"Refund created: {refund['id']} for PaymentIntent {order_id}")
        return str(refund["id"])
