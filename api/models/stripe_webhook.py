"""Pydantic models for Stripe webhook payloads."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, field_validator


class StripePaymentIntentEvent(BaseModel):
    """PaymentIntent outcome extracted from a webhook event."""

    event_type: str
    order_id: str
    booking_id: UUID | None = None
    charge_id: str | None = None
    failure_reason: str | None = None

    @field_validator("booking_id", mode="before")
    @classmethod
    def validate_booking_id(cls, v: Any) -> UUID | None:
        """Metadata written by other integrations may carry a non-UUID; treat it as absent."""
        if v is None or isinstance(v, UUID):
            return v
        if isinstance(v, str):
            try:
                return UUID(v)
            except ValueError:
                return None
        raise ValueError(f"booking_id must be UUID or string, got {type(v)}")

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "StripePaymentIntentEvent":
        intent = event.get("data", {}).get("object", {})
        metadata = intent.get("metadata") or {}
        last_error = intent.get("last_payment_error") or {}

        return cls(
            event_type=event.get("type", ""),
            order_id=intent.get("id", ""),
            booking_id=metadata.get("booking_id"),
            charge_id=intent.get("latest_charge"),
            failure_reason=last_error.get("message") or intent.get("cancellation_reason"),
        )
