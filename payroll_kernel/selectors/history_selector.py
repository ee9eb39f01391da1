"""
Module: payroll_kernel.selectors.history_selector
Responsibility: Read access to committed settlement history and to the
    period locks that guard against double settlement.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - A (worker, kind, period) is COMMITTED while an unreleased PeriodLock
      covers it.  With overlapping=True any shared day counts; otherwise
      only an identical period does.
"""

from collections.abc import Iterable
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.dtos import HistorySnapshot
from payroll_kernel.domain.values import PeriodState, SettlementKind, SnapshotStatus
from payroll_kernel.exceptions import SnapshotNotFoundError
from payroll_kernel.models.history import HistorySnapshotModel, PeriodLock, SnapshotLineModel
from payroll_kernel.selectors.base import BaseSelector


class HistorySelector(BaseSelector):
    """
    Query snapshots and period locks.

    Contract:
        All methods are read-only.  Snapshot reads return HistorySnapshot
        DTOs whose lines are frozen copies.
    """

    def list_history(
        self,
        worker_id: UUID | None = None,
        include_deleted: bool = False,
    ) -> tuple[HistorySnapshot, ...]:
        """
        Snapshots in commit order, optionally only those with a line for
        worker_id.  Deleted snapshots are left out unless include_deleted.
        """
        query = select(HistorySnapshotModel).order_by(
            HistorySnapshotModel.saved_at,
            HistorySnapshotModel.period_start,
            HistorySnapshotModel.id,
        )
        if worker_id is not None:
            query = query.where(
                HistorySnapshotModel.id.in_(
                    select(SnapshotLineModel.snapshot_id).where(
                        SnapshotLineModel.worker_id == worker_id
                    )
                )
            )
        if not include_deleted:
            query = query.where(HistorySnapshotModel.status == SnapshotStatus.COMMITTED)

        snapshots = self.session.execute(query).scalars().all()
        return tuple(HistorySnapshot.from_model(s) for s in snapshots)

    def get_snapshot(self, snapshot_id: UUID) -> HistorySnapshot:
        """
        Raises:
            SnapshotNotFoundError: No snapshot with this id.
        """
        snapshot = self.session.get(HistorySnapshotModel, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        return HistorySnapshot.from_model(snapshot)

    def snapshot_rows(self, snapshot_id: UUID) -> list[dict[str, Any]]:
        """Flat export rows, one per snapshot line."""
        snapshot = self.get_snapshot(snapshot_id)
        header = {
            "snapshot_id": snapshot.id,
            "kind": snapshot.kind.value,
            "period_start": snapshot.period_start,
            "period_end": snapshot.period_end,
            "saved_at": snapshot.saved_at,
            "status": snapshot.status.value,
        }
        return [{**header, **line.to_dict()} for line in snapshot.lines]

    def find_live_lock(
        self,
        worker_id: UUID,
        kind: SettlementKind,
        period_start: date,
        period_end: date,
        overlapping: bool = True,
    ) -> PeriodLock | None:
        """
        The unreleased lock that blocks settling this period, if any.

        Returns the ORM row so the committer can report its snapshot id
        inside the same transaction.
        """
        query = (
            select(PeriodLock)
            .where(PeriodLock.worker_id == worker_id)
            .where(PeriodLock.kind == kind)
            .where(PeriodLock.released_at.is_(None))
        )
        if overlapping:
            query = query.where(PeriodLock.period_start <= period_end).where(
                PeriodLock.period_end >= period_start
            )
        else:
            query = query.where(PeriodLock.period_start == period_start).where(
                PeriodLock.period_end == period_end
            )
        return self.session.execute(
            query.order_by(PeriodLock.period_start).limit(1)
        ).scalar_one_or_none()

    def locked_workers(
        self,
        worker_ids: Iterable[UUID],
        kind: SettlementKind,
        period_start: date,
        period_end: date,
        overlapping: bool = True,
    ) -> dict[UUID, PeriodLock]:
        """Map of worker id -> blocking lock, for the workers that have one."""
        locked = {}
        for worker_id in worker_ids:
            lock = self.find_live_lock(worker_id, kind, period_start, period_end, overlapping)
            if lock is not None:
                locked[worker_id] = lock
        return locked

    def period_state(
        self,
        worker_id: UUID,
        kind: SettlementKind,
        period_start: date,
        period_end: date,
    ) -> PeriodState:
        """
        Persisted state of (worker, kind, period).

        DRAFT is never persisted, so an unlocked period reads UNCOMPUTED
        unless it was committed and then deleted.
        """
        if self.find_live_lock(worker_id, kind, period_start, period_end, overlapping=False):
            return PeriodState.COMMITTED
        released = self.session.execute(
            select(PeriodLock.id)
            .where(PeriodLock.worker_id == worker_id)
            .where(PeriodLock.kind == kind)
            .where(PeriodLock.period_start == period_start)
            .where(PeriodLock.period_end == period_end)
            .where(PeriodLock.released_at.is_not(None))
            .limit(1)
        ).scalar_one_or_none()
        if released is not None:
            return PeriodState.DELETED
        return PeriodState.UNCOMPUTED
