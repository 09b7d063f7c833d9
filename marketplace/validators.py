"""
Reservation validators.

Checks run before the unit of work opens (fail fast, no writes) and again on
the re-read inside it. Each validator raises the typed error the API renders.
"""

import logging
from uuid import UUID

from database.models import CandidateProfile, Slot, SlotStatus
from marketplace.errors import (
    NotFoundError,
    ProfileIncompleteError,
    SlotUnavailableError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


def validate_actor(user_id: UUID | None) -> UUID:
    """The acting user must be known; the request layer passes None when it is not."""
    if user_id is None:
        raise UnauthorizedError("Authentication required to book a slot")
    return user_id


def validate_candidate_profile(profile: CandidateProfile | None, user_id: UUID) -> CandidateProfile:
    """
    Candidate must have a completed profile.

    Raises:
        ProfileIncompleteError: No profile, or no resume uploaded yet
    """
    if profile is None or not profile.is_complete:
        logger.info(f"Candidate profile incomplete for user {user_id}")
        raise ProfileIncompleteError(
            "Candidate profile not found or incomplete. Complete your profile before booking.",
            details={"user_id": str(user_id)},
        )
    return profile


def validate_slot_reservable(slot: Slot | None, slot_id: UUID) -> Slot:
    """
    Slot must exist and be available.

    Raises:
        NotFoundError: Slot does not exist
        SlotUnavailableError: Slot is pending payment, booked, completed or cancelled
    """
    if slot is None:
        raise NotFoundError("Slot not found", details={"slot_id": str(slot_id)})

    if slot.status != SlotStatus.AVAILABLE:
        raise SlotUnavailableError(
            "Slot is not available for booking",
            details={"slot_id": str(slot_id), "status": slot.status.value},
        )
    return slot
