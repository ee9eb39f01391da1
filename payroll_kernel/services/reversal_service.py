"""
SnapshotReversalService -- deletes a committed snapshot by reversing exactly
the ledger entries it produced.

Responsibility:
    For every entry tagged with the snapshot's id, appends a compensating
    entry of the opposite kind and the same amount, releases the snapshot's
    period locks, and marks the snapshot deleted.  All in one transaction.

Architecture position:
    Kernel > Services -- owns its transaction boundary.  Holds the locks of
    every affected worker (acquired in sorted order) for the duration.

Invariants enforced:
    - Ledger rows are never mutated or removed; reversal only appends.
    - Exactly the snapshot's own entries are reversed (by source_commit_id),
      never a recomputed net amount.  Each is reversed at most once
      (uq_ledger_reversal_of).
    - Reversal symmetry: every affected worker's balance returns to what it
      was before the commit, give or take entries written since.
    - committed -> deleted is one-way; a second delete is refused.

Failure modes:
    - SnapshotNotFoundError: unknown id.
    - SnapshotAlreadyDeletedError: already reversed.
    - ConcurrentModificationError after max_commit_attempts attempts.

Audit relevance:
    The deleted snapshot keeps its lines and gains deleted_at,
    deleted_by_id and delete_reason.  Compensating entries carry
    reversal_of_id and source_commit_id, so both directions of the trail
    are queryable.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from payroll_kernel.db.base import SYSTEM_ACTOR_ID
from payroll_kernel.db.engine import session_scope
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import ReversalResult
from payroll_kernel.domain.values import EntryKind, SnapshotStatus
from payroll_kernel.exceptions import SnapshotAlreadyDeletedError, SnapshotNotFoundError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.history import HistorySnapshotModel, PeriodLock
from payroll_kernel.models.ledger import LedgerEntry
from payroll_kernel.services.base import retry_on_conflict
from payroll_kernel.services.ledger_store import LedgerStore
from payroll_kernel.services.locking import WorkerLockRegistry

logger = get_logger("services.reversal")

_OPPOSITE = {
    EntryKind.DEPOSIT: EntryKind.ADVANCE,
    EntryKind.ADVANCE: EntryKind.DEPOSIT,
}


class SnapshotReversalService:
    """
    Reverses and deletes snapshots.

    Contract:
        delete_snapshot() either fully reverses the snapshot or changes
        nothing.

    Non-goals:
        - Does not recommit anything; the caller recalculates and commits
          afresh if the period should be settled again.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        locks: WorkerLockRegistry | None = None,
        clock: Clock | None = None,
        max_commit_attempts: int = 3,
    ):
        self._session_factory = session_factory
        self._locks = locks or WorkerLockRegistry()
        self._clock = clock or SystemClock()
        self._max_attempts = max_commit_attempts

    def delete_snapshot(
        self,
        snapshot_id: UUID,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        reason: str | None = None,
    ) -> ReversalResult:
        """
        Reverse a snapshot's ledger effect and mark it deleted.

        Raises:
            SnapshotNotFoundError, SnapshotAlreadyDeletedError.
        """
        with LogContext.bind(snapshot_id=snapshot_id, actor_id=actor_id):
            worker_ids = self._affected_workers(snapshot_id)
            with self._locks.hold_many(worker_ids):
                result = retry_on_conflict(
                    lambda: self._reverse(snapshot_id, actor_id, reason),
                    self._max_attempts,
                    "delete_snapshot",
                )

            logger.info(
                "snapshot_deleted",
                extra={
                    "affected_worker_count": len(result.affected_worker_ids),
                    "reversal_entry_count": len(result.reversal_entry_ids),
                    "released_lock_count": result.released_lock_count,
                    "reason": reason,
                },
            )
        return result

    def _affected_workers(self, snapshot_id: UUID) -> tuple[UUID, ...]:
        with session_scope(self._session_factory) as session:
            snapshot = self._load(session, snapshot_id, for_update=False)
            return tuple(line.worker_id for line in snapshot.lines)

    def _reverse(
        self,
        snapshot_id: UUID,
        actor_id: UUID,
        reason: str | None,
    ) -> ReversalResult:
        with session_scope(self._session_factory) as session:
            snapshot = self._load(session, snapshot_id, for_update=True)

            originals = session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.source_commit_id == snapshot_id)
                .where(LedgerEntry.reversal_of_id.is_(None))
                .order_by(LedgerEntry.worker_id, LedgerEntry.seq)
            ).scalars().all()

            ledger = LedgerStore(session, self._clock)
            reversal_ids = []
            for original in originals:
                reversal = ledger.append(
                    original.worker_id,
                    _OPPOSITE[original.kind],
                    original.amount,
                    notes=f"reversal of {original.kind.value} #{original.seq}",
                    source_commit_id=snapshot_id,
                    reversal_of_id=original.id,
                    actor_id=actor_id,
                )
                reversal_ids.append(reversal.id)

            now = self._clock.now()
            locks = session.execute(
                select(PeriodLock)
                .where(PeriodLock.snapshot_id == snapshot_id)
                .where(PeriodLock.released_at.is_(None))
            ).scalars().all()
            for lock in locks:
                lock.released_at = now
                lock.updated_by_id = actor_id

            snapshot.status = SnapshotStatus.DELETED
            snapshot.deleted_at = now
            snapshot.deleted_by_id = actor_id
            snapshot.delete_reason = reason
            snapshot.updated_by_id = actor_id
            session.flush()

            return ReversalResult(
                snapshot_id=snapshot_id,
                affected_worker_ids=tuple(line.worker_id for line in snapshot.lines),
                reversal_entry_ids=tuple(reversal_ids),
                released_lock_count=len(locks),
            )

    @staticmethod
    def _load(session: Session, snapshot_id: UUID, for_update: bool) -> HistorySnapshotModel:
        query = select(HistorySnapshotModel).where(HistorySnapshotModel.id == snapshot_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        snapshot = session.execute(query).scalar_one_or_none()
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        if snapshot.status == SnapshotStatus.DELETED:
            raise SnapshotAlreadyDeletedError(snapshot_id)
        return snapshot
