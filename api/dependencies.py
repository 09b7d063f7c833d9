"""
FastAPI dependencies: acting user and service providers.

Authentication happens upstream; the gateway in front of this service sets
X-User-Id and X-User-Role. The acting user is passed explicitly into the core,
which never reads request state itself.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header

from database.models import UserRole
from marketplace.errors import ForbiddenError, UnauthorizedError
from marketplace.services.payment_confirmation_service import PaymentConfirmationService
from marketplace.transactions.approval_transaction import ApprovalWorkflow
from marketplace.transactions.reservation_transaction import ReservationCoordinator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """User on whose behalf a request runs."""

    user_id: UUID | None
    role: UserRole | None


async def get_actor(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Read the acting user from upstream auth headers (None when absent)."""
    if not x_user_id:
        return Actor(user_id=None, role=None)

    try:
        user_id = UUID(x_user_id)
    except ValueError as e:
        logger.warning(f"Malformed X-User-Id header: {x_user_id!r}")
        raise UnauthorizedError("Invalid user identity") from e

    role = None
    if x_user_role:
        try:
            role = UserRole(x_user_role.lower())
        except ValueError as e:
            raise UnauthorizedError("Invalid user role") from e

    return Actor(user_id=user_id, role=role)


def _require_role(actor: Actor, role: UserRole) -> Actor:
    if actor.user_id is None:
        raise UnauthorizedError("Authentication required")
    if actor.role != role:
        raise ForbiddenError(
            f"{role.value.capitalize()} role required",
            details={"role": actor.role.value if actor.role else None},
        )
    return actor


async def require_admin(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    return _require_role(actor, UserRole.ADMIN)


async def require_interviewer(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    return _require_role(actor, UserRole.INTERVIEWER)


async def require_candidate(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    return _require_role(actor, UserRole.CANDIDATE)


@lru_cache
def get_reservation_coordinator() -> ReservationCoordinator:
    return ReservationCoordinator()


@lru_cache
def get_confirmation_service() -> PaymentConfirmationService:
    return PaymentConfirmationService()


@lru_cache
def get_approval_workflow() -> ApprovalWorkflow:
    return ApprovalWorkflow()
