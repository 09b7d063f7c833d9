"""
Interviewer verification workflow.

Interviewers submit a verification request; an admin approves or rejects it.
The request status and the interviewer's verification_status change in one
unit of work. The interviewer is emailed AFTER commit, best-effort: a failed
email never undoes the decision.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import ApprovalRequest, ApprovalStatus, VerificationStatus, utcnow
from marketplace.errors import AlreadyProcessedError, NotFoundError, ReservationFailedError
from marketplace.services.directory_service import CandidateDirectory
from marketplace.services.notification_service import NotificationService
from marketplace.state import ensure_transition
from marketplace.transactions.unit_of_work import StoreError, UnitOfWork

logger = logging.getLogger(__name__)

APPROVED_SUBJECT = "Your interviewer profile has been verified"
APPROVED_BODY = (
    "Hello {name},\n\n"
    "Your interviewer verification request has been approved. Your profile is now "
    "verified and visible to candidates.\n\n"
    "Regards,\nTeam\n\nDo not reply to this automated email."
)
REJECTED_SUBJECT = "Your interviewer verification request was rejected"
REJECTED_BODY = (
    "Hello {name},\n\n"
    "Your verification request has been rejected.{reason} If you believe this was a "
    "mistake, please contact support.\n\n"
    "Regards,\nTeam\n\nDo not reply to this automated email."
)

_VERIFICATION_FOR_DECISION = {
    ApprovalStatus.APPROVED: VerificationStatus.VERIFIED,
    ApprovalStatus.REJECTED: VerificationStatus.REJECTED,
}


def serialize_request(request: ApprovalRequest) -> dict[str, Any]:
    return {
        "request_id": str(request.id),
        "interviewer_id": str(request.interviewer_id),
        "status": request.status.value,
        "requested_at": request.requested_at.isoformat() if request.requested_at else None,
        "decided_at": request.decided_at.isoformat() if request.decided_at else None,
        "decided_by": str(request.decided_by) if request.decided_by else None,
        "reason": request.reason,
    }


class ApprovalWorkflow:
    """Submit, approve and reject interviewer verification requests."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        notifier: NotificationService | None = None,
        directory: CandidateDirectory | None = None,
    ):
        if session_factory is None:
            from database.connection import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory
        self.notifier = notifier or NotificationService()
        self.directory = directory or CandidateDirectory(session_factory)

    async def submit_request(self, interviewer_user_id: UUID) -> dict[str, Any]:
        """
        Open a verification request for the interviewer behind a user account.

        Raises:
            NotFoundError: User has no interviewer profile
            AlreadyProcessedError: Already verified, or a request is already pending
        """
        try:
            async with UnitOfWork(self._session_factory) as uow:
                interviewer = await uow.approvals.get_interviewer_by_user_id(interviewer_user_id)
                if interviewer is None:
                    raise NotFoundError(
                        "Interviewer profile not found",
                        details={"user_id": str(interviewer_user_id)},
                    )
                if interviewer.verification_status == VerificationStatus.VERIFIED:
                    raise AlreadyProcessedError(
                        "Interviewer profile is already verified",
                        details={"interviewer_id": str(interviewer.id)},
                    )
                if await uow.approvals.get_pending_for_interviewer(interviewer.id) is not None:
                    raise AlreadyProcessedError(
                        "There is already a pending approval request for this profile",
                        details={"interviewer_id": str(interviewer.id)},
                    )

                request = uow.approvals.add(
                    ApprovalRequest(
                        id=uuid4(),
                        interviewer_id=interviewer.id,
                        requested_at=utcnow(),
                        status=ApprovalStatus.PENDING,
                    )
                )
                await uow.commit()
        except StoreError as e:
            if e.conflict:
                raise AlreadyProcessedError(
                    "There is already a pending approval request for this profile",
                    details={"user_id": str(interviewer_user_id)},
                ) from e
            raise ReservationFailedError("Verification request could not be saved") from e
        except SQLAlchemyError as e:
            raise ReservationFailedError("Verification request could not be saved") from e

        logger.info(
            f"Verification request {request.id} submitted by interviewer {request.interviewer_id}",
            extra={"approval_request_id": str(request.id)},
        )
        return serialize_request(request)

    async def approve(self, request_id: UUID, decided_by: UUID) -> dict[str, Any]:
        """Approve a pending request and mark the interviewer verified."""
        return await self._decide(request_id, ApprovalStatus.APPROVED, decided_by)

    async def reject(self, request_id: UUID, decided_by: UUID, reason: str | None = None) -> dict[str, Any]:
        """Reject a pending request and mark the interviewer rejected."""
        return await self._decide(request_id, ApprovalStatus.REJECTED, decided_by, reason)

    async def _decide(
        self,
        request_id: UUID,
        decision: ApprovalStatus,
        decided_by: UUID,
        reason: str | None = None,
    ) -> dict[str, Any]:
        try:
            async with UnitOfWork(self._session_factory) as uow:
                request = await uow.approvals.get_for_update(request_id)
                if request is None:
                    raise NotFoundError(
                        "Approval request not found",
                        details={"request_id": str(request_id)},
                    )
                if request.status != ApprovalStatus.PENDING:
                    raise AlreadyProcessedError(
                        f"Request already {request.status.value}",
                        details={"request_id": str(request_id), "status": request.status.value},
                    )
                ensure_transition(request.status, decision, "approval_request")

                # Conditional write: a concurrent decision leaves zero rows here
                if not await uow.approvals.decide(request_id, decision, decided_by, reason):
                    raise AlreadyProcessedError(
                        "Request was decided concurrently",
                        details={"request_id": str(request_id)},
                    )

                interviewer = await uow.approvals.get_interviewer(request.interviewer_id)
                interviewer.verification_status = _VERIFICATION_FOR_DECISION[decision]
                await uow.flush()

                request = await uow.approvals.get_for_update(request_id)
                interviewer_user_id = interviewer.user_id
                await uow.commit()
        except (StoreError, SQLAlchemyError) as e:
            logger.error(f"Approval decision for {request_id} failed: {e}", exc_info=True)
            raise ReservationFailedError(
                "Approval decision could not be saved",
                details={"request_id": str(request_id)},
            ) from e

        logger.info(
            f"Approval request {request_id} {decision.value} by {decided_by}",
            extra={"approval_request_id": str(request_id)},
        )

        await self._notify(interviewer_user_id, decision, reason)
        return serialize_request(request)

    async def _notify(self, user_id: UUID, decision: ApprovalStatus, reason: str | None) -> None:
        try:
            user = await self.directory.find_user(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Could not load user {user_id} for notification: {e}")
            return

        if user is None:
            logger.warning(f"User {user_id} not found, verification email not sent")
            return

        if decision == ApprovalStatus.APPROVED:
            subject, body = APPROVED_SUBJECT, APPROVED_BODY.format(name=user.name)
        else:
            reason_text = f" Reason: {reason}." if reason else ""
            subject, body = REJECTED_SUBJECT, REJECTED_BODY.format(name=user.name, reason=reason_text)

        await self.notifier.send(user.email, subject, body)
