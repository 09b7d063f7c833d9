"""Fixtures for HTTP-level tests: the FastAPI app wired to the test database."""

import httpx
import pytest

from api.dependencies import (
    get_approval_workflow,
    get_confirmation_service,
    get_reservation_coordinator,
)
from api.main import app
from marketplace.services.payment_confirmation_service import PaymentConfirmationService
from marketplace.transactions.approval_transaction import ApprovalWorkflow
from marketplace.transactions.reservation_transaction import ReservationCoordinator


@pytest.fixture
async def client(session_factory, gateway, notifier):
    """AsyncClient against the app, services bound to the per-test SQLite database."""
    coordinator = ReservationCoordinator(session_factory=session_factory, gateway=gateway)
    service = PaymentConfirmationService(session_factory=session_factory, gateway=gateway)
    workflow = ApprovalWorkflow(session_factory=session_factory, notifier=notifier)

    app.dependency_overrides[get_reservation_coordinator] = lambda: coordinator
    app.dependency_overrides[get_confirmation_service] = lambda: service
    app.dependency_overrides[get_approval_workflow] = lambda: workflow

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
