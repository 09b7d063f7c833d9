"""Interviewer verification route handlers."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status

from api.dependencies import (
    Actor,
    get_approval_workflow,
    require_admin,
    require_interviewer,
)
from api.models.bookings import ApprovalRequestResponse, RejectRequestBody
from marketplace.transactions.approval_transaction import ApprovalWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["approvals"])


@router.post(
    "/interviewers/verification-requests",
    response_model=ApprovalRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_verification_request(
    actor: Annotated[Actor, Depends(require_interviewer)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
) -> dict:
    return await workflow.submit_request(actor.user_id)


@router.post(
    "/admin/approval-requests/{request_id}/approve",
    response_model=ApprovalRequestResponse,
)
async def approve_request(
    request_id: UUID,
    actor: Annotated[Actor, Depends(require_admin)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
) -> dict:
    return await workflow.approve(request_id, decided_by=actor.user_id)


@router.post(
    "/admin/approval-requests/{request_id}/reject",
    response_model=ApprovalRequestResponse,
)
async def reject_request(
    request_id: UUID,
    actor: Annotated[Actor, Depends(require_admin)],
    workflow: Annotated[ApprovalWorkflow, Depends(get_approval_workflow)],
    body: Annotated[RejectRequestBody | None, Body()] = None,
) -> dict:
    """Reject a pending request; the optional reason is included in the email."""
    reason = body.reason if body else None
    return await workflow.reject(request_id, decided_by=actor.user_id, reason=reason)
