"""
Unit of work: one session, one transaction, three stores.

Usage:
    async with UnitOfWork() as uow:
        slot = await uow.slots.get_for_update(slot_id)
        uow.bookings.add(booking)
        uow.payments.add(payment)
        await uow.flush()
        if not await uow.slots.claim(slot.id, slot.version, booking.id):
            raise SlotUnavailableError(...)
        await uow.commit()

Leaving the block without commit() (exception, early return) rolls back.
SQLAlchemy errors from flush/commit are re-raised as StoreError so callers
can map them onto their own error taxonomy.
"""

import logging
from types import TracebackType

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.stores import ApprovalRequestStore, BookingStore, PaymentStore, SlotStore

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """
    A flush or commit failed and the transaction was rolled back.

    Attributes:
        conflict: True for integrity violations (unique / partial unique index),
            which signal a concurrent writer rather than an outage
    """

    def __init__(self, message: str, conflict: bool = False):
        self.conflict = conflict
        super().__init__(message)


class UnitOfWork:
    """Async context manager owning one AsyncSession and its transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from database.connection import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self._session_factory = session_factory
        self._committed = False
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        self._committed = False
        self.slots = SlotStore(self.session)
        self.bookings = BookingStore(self.session)
        self.payments = PaymentStore(self.session)
        self.approvals = ApprovalRequestStore(self.session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if not self._committed:
                await self.rollback()
        finally:
            await self.session.close()

    async def _commit(self) -> None:
        await self.session.commit()

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.rollback()
            raise StoreError(f"Flush failed: {e}", conflict=isinstance(e, IntegrityError)) from e

    async def commit(self) -> None:
        """Commit the transaction; on failure roll back and raise StoreError."""
        try:
            await self._commit()
        except SQLAlchemyError as e:
            logger.error(f"Unit of work commit failed: {type(e).__name__}: {e}")
            await self.rollback()
            raise StoreError(f"Commit failed: {e}", conflict=isinstance(e, IntegrityError)) from e
        self._committed = True

    async def rollback(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            # Connection already gone; closing the session discards the transaction
            logger.warning(f"Rollback failed: {type(e).__name__}: {e}")
