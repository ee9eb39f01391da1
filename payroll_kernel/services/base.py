"""
BaseService -- abstract base for flush-only kernel services, plus the
conflict-retry helper used by services that own their own transactions.

Responsibility:
    Flush-only services (LedgerStore, AttendanceRecorder) receive a Session
    and call ``session.flush()`` -- never ``session.commit()``.  The caller
    owns commit/rollback.

    Boundary-owning services (WorkerAccountService, SettlementCommitter,
    SnapshotReversalService) take a session factory instead, open one
    session per unit of work via ``session_scope()``, and retry that unit of
    work on ConcurrentModificationError with ``retry_on_conflict()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Failure modes:
    - retry_on_conflict() re-raises the last ConcurrentModificationError once
      max_attempts is exhausted.  Every other exception propagates at once.
"""

from abc import ABC
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session

from payroll_kernel.exceptions import ConcurrentModificationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.base")

T = TypeVar("T")


class BaseService(ABC):
    """
    Abstract base class for flush-only kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` -- the caller controls transaction
          boundaries.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in ``payroll_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session


def retry_on_conflict(
    operation: Callable[[], T],
    max_attempts: int,
    operation_name: str,
) -> T:
    """
    Run ``operation`` until it stops raising ConcurrentModificationError.

    ``operation`` must open its own transaction, so that every attempt
    re-reads the worker row and re-validates against fresh state.
    """
    attempt = 1
    while True:
        try:
            return operation()
        except ConcurrentModificationError as exc:
            if attempt >= max_attempts:
                logger.warning(
                    "conflict_retries_exhausted",
                    extra={
                        "operation": operation_name,
                        "worker_id": str(exc.worker_id),
                        "attempts": attempt,
                    },
                )
                raise
            logger.info(
                "conflict_retry",
                extra={
                    "operation": operation_name,
                    "worker_id": str(exc.worker_id),
                    "attempt": attempt,
                },
            )
            attempt += 1
