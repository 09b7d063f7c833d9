"""Unit tests for webhook Pydantic models."""

from uuid import uuid4

from api.models.stripe_webhook import StripePaymentIntentEvent


def _event(event_type: str, **intent_fields) -> dict:
    intent = {"id": "pi_123", "object": "payment_intent", "metadata": {}}
    intent.update(intent_fields)
    return {"id": "evt_1", "type": event_type, "created": 1760000000, "data": {"object": intent}}


class TestStripePaymentIntentEvent:
    """Tests for extracting PaymentIntent outcomes."""

    def test_succeeded_event(self) -> None:
        booking_id = uuid4()
        event = _event(
            "payment_intent.succeeded",
            metadata={"booking_id": str(booking_id)},
            latest_charge="ch_1",
        )

        result = StripePaymentIntentEvent.from_event(event)

        assert result.event_type == "payment_intent.succeeded"
        assert result.order_id == "pi_123"
        assert result.booking_id == booking_id
        assert result.charge_id == "ch_1"
        assert result.failure_reason is None

    def test_failed_event_reason_from_last_error(self) -> None:
        event = _event(
            "payment_intent.payment_failed",
            last_payment_error={"message": "Your card was declined."},
        )

        result = StripePaymentIntentEvent.from_event(event)

        assert result.failure_reason == "Your card was declined."

    def test_canceled_event_reason(self) -> None:
        event = _event("payment_intent.canceled", cancellation_reason="abandoned")

        result = StripePaymentIntentEvent.from_event(event)

        assert result.failure_reason == "abandoned"

    def test_non_uuid_booking_id_ignored(self) -> None:
        """Metadata from another integration must not break parsing."""
        event = _event("payment_intent.succeeded", metadata={"booking_id": "order-42"})

        result = StripePaymentIntentEvent.from_event(event)

        assert result.booking_id is None

    def test_missing_metadata(self) -> None:
        event = _event("payment_intent.succeeded", metadata=None)

        assert StripePaymentIntentEvent.from_event(event).booking_id is None
