"""Pydantic models for booking and verification endpoints."""

from pydantic import BaseModel, Field


class PaymentOrderResponse(BaseModel):
    """Provider order the client completes payment against."""

    order_id: str
    amount: int  # minor units
    currency: str
    client_secret: str | None = None
    status: str | None = None
    provider: str
    publishable_key: str | None = None


class ReservationResponse(BaseModel):
    """Reservation payload returned by the booking endpoints."""

    booking_id: str
    payment_id: str
    slot_id: str
    status: str
    amount: str
    platform_fee: str
    interviewer_amount: str
    currency: str
    scheduled_start_time: str
    expires_at: str | None = None
    payment_order: PaymentOrderResponse | None = None


class ApprovalRequestResponse(BaseModel):
    request_id: str
    interviewer_id: str
    status: str
    requested_at: str | None = None
    decided_at: str | None = None
    decided_by: str | None = None
    reason: str | None = None


class RejectRequestBody(BaseModel):
    reason: str | None = Field(default=None, max_length=500)
