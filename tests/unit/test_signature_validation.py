"""Unit tests for webhook signature validation."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import HTTPException, Request
from stripe import SignatureVerificationError

from api.middleware.signature_validation import validate_stripe_signature

BODY = b'{"id":"evt_1","type":"payment_intent.succeeded"}'


def _request(headers: dict[str, str]) -> AsyncMock:
    mock_request = AsyncMock(spec=Request)
    mock_request.body = AsyncMock(return_value=BODY)
    mock_request.headers = headers
    return mock_request


class TestStripeSignatureValidation:
    """Tests for Stripe signature validation."""

    async def test_valid_signature_returns_event(self):
        """Test that a valid Stripe signature returns the parsed event."""
        mock_request = _request({"Stripe-Signature": "t=1,v1=abc"})
        event = {"id": "evt_1", "type": "payment_intent.succeeded"}

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = "whsec_test"
            with patch(
                "api.middleware.signature_validation.stripe.Webhook.construct_event",
                return_value=event,
            ) as mock_construct:
                result = await validate_stripe_signature(mock_request)

        assert result == event
        mock_construct.assert_called_once_with(
            payload=BODY, sig_header="t=1,v1=abc", secret="whsec_test"
        )

    async def test_invalid_signature_returns_401(self):
        """Test that a signature Stripe rejects raises 401."""
        mock_request = _request({"Stripe-Signature": "t=1,v1=forged"})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = "whsec_test"
            with patch(
                "api.middleware.signature_validation.stripe.Webhook.construct_event",
                side_effect=SignatureVerificationError("bad sig", "t=1,v1=forged"),
            ):
                with pytest.raises(HTTPException) as exc_info:
                    await validate_stripe_signature(mock_request)

        assert exc_info.value.status_code == 401

    async def test_missing_signature_header_returns_401(self):
        """Test that a request without Stripe-Signature raises 401."""
        mock_request = _request({})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = "whsec_test"

            with pytest.raises(HTTPException) as exc_info:
                await validate_stripe_signature(mock_request)

        assert exc_info.value.status_code == 401

    async def test_malformed_body_returns_400(self):
        """Test that a body Stripe cannot parse raises 400."""
        mock_request = _request({"Stripe-Signature": "t=1,v1=abc"})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = "whsec_test"
            with patch(
                "api.middleware.signature_validation.stripe.Webhook.construct_event",
                side_effect=ValueError("Invalid payload"),
            ):
                with pytest.raises(HTTPException) as exc_info:
                    await validate_stripe_signature(mock_request)

        assert exc_info.value.status_code == 400

    async def test_missing_secret_returns_503(self):
        """Test that an unconfigured webhook secret rejects every event."""
        mock_request = _request({"Stripe-Signature": "t=1,v1=abc"})

        with patch("api.middleware.signature_validation.get_settings") as mock_settings:
            mock_settings.return_value.STRIPE_WEBHOOK_SECRET = ""

            with pytest.raises(HTTPException) as exc_info:
                await validate_stripe_signature(mock_request)

        assert exc_info.value.status_code == 503
