"""
Atomic Transaction Handlers.

Transaction handlers encapsulate multi-step operations that must execute
atomically (all succeed or all roll back). They coordinate between:
- PostgreSQL database (via SQLAlchemy async sessions, one unit of work each)
- Payment gateway (called only after commit)

Key design principles:
1. Slot status writes are compare-and-swap on (status, version)
2. Partial unique indexes back the compare-and-swap at the storage level
3. No external call while a transaction is open
4. Exhaustive logging with trace_id for debugging
5. Typed errors with stable error codes

Transaction handlers:
- ReservationCoordinator: Reserve a slot and open its payment order
- ApprovalWorkflow: Interviewer verification requests
"""

from marketplace.transactions.approval_transaction import ApprovalWorkflow
from marketplace.transactions.reservation_transaction import (
    ReservationCoordinator,
    ReservationResult,
)
from marketplace.transactions.unit_of_work import StoreError, UnitOfWork

__all__ = [
    "ApprovalWorkflow",
    "ReservationCoordinator",
    "ReservationResult",
    "StoreError",
    "UnitOfWork",
]
