"""Integration tests for booking and verification endpoints."""

from uuid import uuid4

import pytest

from database.models import VerificationStatus
from shared.payment_gateway import PaymentGatewayError

pytestmark = pytest.mark.integration


def _candidate_headers(profile) -> dict[str, str]:
    return {"X-User-Id": str(profile.user_id), "X-User-Role": "candidate"}


class TestBookSlotEndpoint:
    """Integration tests for POST /api/v1/slots/{slot_id}/book."""

    async def test_book_slot_returns_201_with_payment_order(self, client, seed):
        candidate = await seed.candidate()
        slot = await seed.slot()

        response = await client.post(
            f"/api/v1/slots/{slot.id}/book", headers=_candidate_headers(candidate)
        )

        assert response.status_code == 201
        data = response.json()
        assert data["slot_id"] == str(slot.id)
        assert data["status"] == "pending"
        assert data["amount"] == "500.00"
        assert data["platform_fee"] == "100.00"
        assert data["interviewer_amount"] == "400.00"
        assert data["payment_order"]["order_id"] == "pi_fake_0001"
        assert data["payment_order"]["amount"] == 50000
        assert data["payment_order"]["client_secret"] == "pi_fake_0001_secret"

    async def test_second_booking_returns_409(self, client, seed):
        slot = await seed.slot()
        first = await seed.candidate()
        second = await seed.candidate()

        await client.post(f"/api/v1/slots/{slot.id}/book", headers=_candidate_headers(first))
        response = await client.post(
            f"/api/v1/slots/{slot.id}/book", headers=_candidate_headers(second)
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "SLOT_UNAVAILABLE"

    async def test_missing_identity_returns_401(self, client, seed):
        slot = await seed.slot()

        response = await client.post(f"/api/v1/slots/{slot.id}/book")

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    async def test_interviewer_role_returns_403(self, client, seed, gateway):
        interviewer = await seed.interviewer()
        slot = await seed.slot()

        response = await client.post(
            f"/api/v1/slots/{slot.id}/book",
            headers={"X-User-Id": str(interviewer.user_id), "X-User-Role": "interviewer"},
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"
        assert gateway.create_calls == []

    async def test_admin_cannot_retry_payment_order(self, client):
        response = await client.post(
            f"/api/v1/bookings/{uuid4()}/payment-order",
            headers={"X-User-Id": str(uuid4()), "X-User-Role": "admin"},
        )

        assert response.status_code == 403

    async def test_incomplete_profile_returns_422(self, client, seed):
        candidate = await seed.candidate(resume_url=None)
        slot = await seed.slot()

        response = await client.post(
            f"/api/v1/slots/{slot.id}/book", headers=_candidate_headers(candidate)
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "PROFILE_INCOMPLETE"

    async def test_unknown_slot_returns_404(self, client, seed):
        candidate = await seed.candidate()

        response = await client.post(
            f"/api/v1/slots/{uuid4()}/book", headers=_candidate_headers(candidate)
        )

        assert response.status_code == 404

    async def test_gateway_failure_returns_502_then_retry_succeeds(self, client, seed, gateway):
        candidate = await seed.candidate()
        slot = await seed.slot()
        gateway.fail_with = PaymentGatewayError("timeout", retryable=True)

        response = await client.post(
            f"/api/v1/slots/{slot.id}/book", headers=_candidate_headers(candidate)
        )

        assert response.status_code == 502
        body = response.json()
        assert body["error_code"] == "GATEWAY_ORDER_FAILED"
        booking_id = body["details"]["booking_id"]

        gateway.fail_with = None
        retry = await client.post(
            f"/api/v1/bookings/{booking_id}/payment-order", headers=_candidate_headers(candidate)
        )

        assert retry.status_code == 200
        assert retry.json()["booking_id"] == booking_id
        assert retry.json()["payment_order"]["order_id"] == "pi_fake_0001"
        assert gateway.create_calls[0][2] == gateway.create_calls[1][2] == booking_id


class TestVerificationEndpoints:
    """Integration tests for interviewer verification."""

    async def test_submit_and_approve(self, client, seed, notifier):
        interviewer = await seed.interviewer(verification_status=VerificationStatus.PENDING)

        submitted = await client.post(
            "/api/v1/interviewers/verification-requests",
            headers={"X-User-Id": str(interviewer.user_id), "X-User-Role": "interviewer"},
        )
        assert submitted.status_code == 201
        request_id = submitted.json()["request_id"]

        approved = await client.post(
            f"/api/v1/admin/approval-requests/{request_id}/approve",
            headers={"X-User-Id": str(uuid4()), "X-User-Role": "admin"},
        )

        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert len(notifier.sent) == 1

    async def test_reject_with_reason(self, client, seed, notifier):
        interviewer = await seed.interviewer(verification_status=VerificationStatus.PENDING)
        request = await seed.approval_request(interviewer)

        response = await client.post(
            f"/api/v1/admin/approval-requests/{request.id}/reject",
            headers={"X-User-Id": str(uuid4()), "X-User-Role": "admin"},
            json={"reason": "Employer could not be verified"},
        )

        assert response.status_code == 200
        assert response.json()["reason"] == "Employer could not be verified"

    async def test_non_admin_forbidden(self, client, seed):
        interviewer = await seed.interviewer(verification_status=VerificationStatus.PENDING)
        request = await seed.approval_request(interviewer)

        response = await client.post(
            f"/api/v1/admin/approval-requests/{request.id}/approve",
            headers={"X-User-Id": str(interviewer.user_id), "X-User-Role": "interviewer"},
        )

        assert response.status_code == 403

    async def test_decided_twice_returns_409(self, client, seed):
        interviewer = await seed.interviewer(verification_status=VerificationStatus.PENDING)
        request = await seed.approval_request(interviewer)
        admin = {"X-User-Id": str(uuid4()), "X-User-Role": "admin"}

        await client.post(f"/api/v1/admin/approval-requests/{request.id}/approve", headers=admin)
        response = await client.post(
            f"/api/v1/admin/approval-requests/{request.id}/reject", headers=admin
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "ALREADY_PROCESSED"


class TestRootEndpoint:

    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert "message" in response.json()