"""
Candidate directory - profile and contact lookups for the reservation core.

Profile CRUD lives elsewhere; this service only answers the two questions the
core asks: "does this user have a completed candidate profile?" and "where do
we email this user?".
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import CandidateProfile, User
from database.stores import get_candidate_by_user_id

logger = logging.getLogger(__name__)


class CandidateDirectory:
    """Read-only lookups, each in its own short session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from database.connection import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory

    async def find_profile_by_user_id(self, user_id: UUID) -> CandidateProfile | None:
        """
        Candidate profile of a user.

        Returns:
            CandidateProfile, or None if the user never created one
        """
        async with self._session_factory() as session:
            profile = await get_candidate_by_user_id(session, user_id)

        if profile is None:
            logger.info(f"No candidate profile for user {user_id}")
        return profile

    async def find_user(self, user_id: UUID) -> User | None:
        async with self._session_factory() as session:
            return await session.get(User, user_id)
