"""
Payment gateway contract shared by the reservation core and provider clients.

The reservation core only depends on the ``PaymentGateway`` protocol below.
``shared.stripe_client.StripePaymentGateway`` is the production implementation;
tests plug in an in-memory fake.
"""

from dataclasses import dataclass
from typing import Protocol


class PaymentGatewayError(Exception):
    """
    Raised when the payment provider rejects or cannot complete a request.

    Attributes:
        message: Error message
        provider: Provider name (e.g. "stripe")
        retryable: Whether the same request may succeed if repeated later
    """

    def __init__(self, message: str, provider: str = "stripe", retryable: bool = False):
        self.message = message
        self.provider = provider
        self.retryable = retryable
        super().__init__(message)


@dataclass(frozen=True)
class GatewayOrder:
    """Provider-side order created for one booking."""

    order_id: str
    amount: int  # minor units (paise, cents)
    currency: str
    client_secret: str | None = None
    status: str | None = None


class PaymentGateway(Protocol):
    """Operations the marketplace needs from a payment provider."""

    provider_name: str
    publishable_key: str

    async def create_order(
        self, amount_minor_units: int, currency: str, idempotency_key: str
    ) -> GatewayOrder:
        ...

    async def cancel_order(self, order_id: str) -> bool:
        ...

    async def refund_payment(self, order_id: str, idempotency_key: str) -> str:
        ...


def validate_order(
    order: GatewayOrder, amount_minor_units: int, currency: str, provider: str = "stripe"
) -> GatewayOrder:
    """
    Check that the provider echoed back the amount and currency we asked for.

    Raises:
        PaymentGatewayError: If amount or currency differ from the request
    """
    if order.amount != amount_minor_units or order.currency.upper() != currency.upper():
        raise PaymentGatewayError(
            f"Order {order.order_id} mismatch: requested {amount_minor_units} {currency.upper()}, "
            f"provider returned {order.amount} {order.currency.upper()}",
            provider=provider,
        )
    return order
