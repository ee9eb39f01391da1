"""
SettlementCommitter -- the only path from a draft settlement into the ledger.

Responsibility:
    Turns a DraftSettlement into a HistorySnapshot: per worker, re-validates
    the proposed deposit against the balance at commit time, appends the
    deposit entry tagged with the snapshot id, writes the frozen snapshot
    line, and locks the period.

Architecture position:
    Kernel > Services -- owns its transaction boundaries.  One transaction
    per worker; the snapshot header is written by the first worker that
    commits, inside that worker's transaction.

Invariants enforced:
    - Commit atomicity per worker: the deposit entry, the snapshot line and
      the period lock become visible together or not at all.
    - No double application: a worker with a live lock on an overlapping
      period of the same kind is rejected with PeriodAlreadyLockedError
      (and the partial unique index on period_locks backs this up).
    - Deposits never overdraw: re-validated under the worker lock and again
      by LedgerStore's version compare-and-swap.
    - A rejected worker never rolls back workers already committed.

Failure modes (reported per worker in CommitResult.rejected):
    - PeriodAlreadyLockedError, InsufficientBalanceError,
      WorkerNotFoundError, WorkerInactiveError, InvalidAmountError.
    - ConcurrentModificationError after max_commit_attempts attempts.
    Unexpected (non-PayrollKernelError) exceptions propagate; workers
    committed before them stay committed.

Audit relevance:
    Every rejection is logged at WARNING as ``worker_commit_rejected`` with
    its code and period; the batch outcome is logged as
    ``snapshot_committed``.
"""

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from payroll_kernel.db.base import SYSTEM_ACTOR_ID
from payroll_kernel.db.engine import session_scope
from payroll_kernel.db.types import non_negative_money
from payroll_kernel.domain.calculator import validate_period
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import CommitResult, DraftLine, DraftSettlement, WorkerFailure
from payroll_kernel.domain.values import EntryKind, SnapshotStatus
from payroll_kernel.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    PayrollKernelError,
    PeriodAlreadyLockedError,
    WorkerInactiveError,
    WorkerNotFoundError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.history import HistorySnapshotModel, PeriodLock, SnapshotLineModel
from payroll_kernel.models.worker import WorkerAccount
from payroll_kernel.selectors.history_selector import HistorySelector
from payroll_kernel.services.base import retry_on_conflict
from payroll_kernel.services.ledger_store import LedgerStore
from payroll_kernel.services.locking import WorkerLockRegistry

logger = get_logger("services.settlement_committer")


class SettlementCommitter:
    """
    Commits drafts.

    Contract:
        commit() is NOT idempotent: it is the single explicit, confirmed act
        for a period.  Committing the same draft twice yields
        PeriodAlreadyLockedError for every worker the second time.

    Guarantees:
        - Every line of the draft ends up either in committed_worker_ids or
          in rejected; draft.failures are carried into rejected unchanged.
        - snapshot_id is None only if no worker committed.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        locks: WorkerLockRegistry | None = None,
        clock: Clock | None = None,
        max_commit_attempts: int = 3,
        lock_overlapping_periods: bool = True,
    ):
        self._session_factory = session_factory
        self._locks = locks or WorkerLockRegistry()
        self._clock = clock or SystemClock()
        self._max_attempts = max_commit_attempts
        self._overlapping = lock_overlapping_periods

    def commit(
        self,
        draft: DraftSettlement,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> CommitResult:
        """
        Commit every line of the draft, one worker at a time.

        Args:
            draft: The reviewed draft, passed inline.
            actor_id: Who confirmed the commit.

        Returns:
            CommitResult with the snapshot id, the committed workers, and
            the rejected workers with structured reasons.
        """
        validate_period(draft.period_start, draft.period_end)
        snapshot_id = uuid4()
        fingerprint = draft.fingerprint()

        committed: list[UUID] = []
        rejected: list[WorkerFailure] = list(draft.failures)

        with LogContext.bind(snapshot_id=snapshot_id, actor_id=actor_id):
            for line in draft.lines:
                try:
                    with LogContext.bind(worker_id=line.worker_id):
                        with self._locks.hold(line.worker_id):
                            retry_on_conflict(
                                lambda line=line: self._commit_worker(
                                    draft, line, snapshot_id, fingerprint, actor_id
                                ),
                                self._max_attempts,
                                "commit_worker",
                            )
                except PayrollKernelError as exc:
                    failure = WorkerFailure.from_error(
                        exc, line.worker_id, draft.period_start, draft.period_end
                    )
                    rejected.append(failure)
                    logger.warning(
                        "worker_commit_rejected",
                        extra={
                            "worker_id": str(line.worker_id),
                            "error_code": failure.code,
                            "retryable": failure.retryable,
                            "kind": draft.kind.value,
                            "period_start": str(draft.period_start),
                            "period_end": str(draft.period_end),
                            "detail": failure.message,
                        },
                    )
                else:
                    committed.append(line.worker_id)

            result = CommitResult(
                snapshot_id=snapshot_id if committed else None,
                committed_worker_ids=tuple(committed),
                rejected=tuple(rejected),
            )
            logger.info(
                "snapshot_committed" if committed else "snapshot_commit_empty",
                extra={
                    "kind": draft.kind.value,
                    "period_start": str(draft.period_start),
                    "period_end": str(draft.period_end),
                    "committed_count": len(committed),
                    "rejected_count": len(rejected),
                    "draft_fingerprint": fingerprint,
                },
            )
        return result

    def _commit_worker(
        self,
        draft: DraftSettlement,
        line: DraftLine,
        snapshot_id: UUID,
        fingerprint: str,
        actor_id: UUID,
    ) -> None:
        """One worker's all-or-nothing transaction."""
        _check_amounts(draft, line)

        with session_scope(self._session_factory) as session:
            worker = session.execute(
                select(WorkerAccount)
                .where(WorkerAccount.id == line.worker_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if worker is None:
                raise WorkerNotFoundError(line.worker_id)
            if not worker.is_active:
                raise WorkerInactiveError(line.worker_id, draft.period_start, draft.period_end)

            self._ensure_unlocked(session, draft, line.worker_id)

            # Balance may have moved since the draft was calculated
            if line.proposed_deposit > worker.balance:
                raise InsufficientBalanceError(
                    line.worker_id,
                    line.proposed_deposit,
                    worker.balance,
                    draft.period_start,
                    draft.period_end,
                )

            self._ensure_header(session, draft, snapshot_id, fingerprint, actor_id)

            deposit_entry_id = None
            if line.proposed_deposit > 0:
                entry = LedgerStore(session, self._clock).append(
                    line.worker_id,
                    EntryKind.DEPOSIT,
                    line.proposed_deposit,
                    notes=_settlement_note(draft),
                    source_commit_id=snapshot_id,
                    actor_id=actor_id,
                )
                deposit_entry_id = entry.id

            session.add(
                SnapshotLineModel(
                    snapshot_id=snapshot_id,
                    deposit_entry_id=deposit_entry_id,
                    created_by_id=actor_id,
                    **line.to_dict(),
                )
            )
            session.add(
                PeriodLock(
                    worker_id=line.worker_id,
                    kind=draft.kind,
                    period_start=draft.period_start,
                    period_end=draft.period_end,
                    snapshot_id=snapshot_id,
                    created_by_id=actor_id,
                )
            )
            try:
                session.flush()
            except IntegrityError as exc:
                raise PeriodAlreadyLockedError(
                    line.worker_id,
                    draft.kind.value,
                    draft.period_start,
                    draft.period_end,
                ) from exc

        logger.info(
            "worker_committed",
            extra={
                "worker_id": str(line.worker_id),
                "final_amount": str(line.final_amount),
                "proposed_deposit": str(line.proposed_deposit),
                "deposit_entry_id": str(deposit_entry_id) if deposit_entry_id else None,
            },
        )

    def _ensure_unlocked(self, session: Session, draft: DraftSettlement, worker_id: UUID) -> None:
        lock = HistorySelector(session).find_live_lock(
            worker_id,
            draft.kind,
            draft.period_start,
            draft.period_end,
            overlapping=self._overlapping,
        )
        if lock is not None:
            raise PeriodAlreadyLockedError(
                worker_id,
                draft.kind.value,
                lock.period_start,
                lock.period_end,
                snapshot_id=lock.snapshot_id,
            )

    def _ensure_header(
        self,
        session: Session,
        draft: DraftSettlement,
        snapshot_id: UUID,
        fingerprint: str,
        actor_id: UUID,
    ) -> None:
        if session.get(HistorySnapshotModel, snapshot_id) is not None:
            return
        session.add(
            HistorySnapshotModel(
                id=snapshot_id,
                kind=draft.kind,
                period_start=draft.period_start,
                period_end=draft.period_end,
                saved_at=self._clock.now(),
                status=SnapshotStatus.COMMITTED,
                locked=True,
                draft_fingerprint=fingerprint,
                adjustments=draft.adjustments.batch_dict(),
                created_by_id=actor_id,
            )
        )
        # Header must exist before entries and lines reference it
        session.flush()


_LINE_AMOUNT_FIELDS = (
    "base_amount",
    "penalty_amount",
    "advance_deduction",
    "extra_amount",
    "proposed_deposit",
    "final_amount",
)


def _check_amounts(draft: DraftSettlement, line: DraftLine) -> None:
    """Drafts arrive inline from callers; every amount must be finite and >= 0."""
    for name in _LINE_AMOUNT_FIELDS:
        value = getattr(line, name)
        try:
            non_negative_money(value, field=name)
        except InvalidAmountError as exc:
            raise InvalidAmountError(
                value,
                field=name,
                worker_id=line.worker_id,
                period_start=draft.period_start,
                period_end=draft.period_end,
            ) from exc


def _settlement_note(draft: DraftSettlement) -> str:
    return (
        f"{draft.kind.value} settlement "
        f"{draft.period_start.isoformat()}..{draft.period_end.isoformat()}"
    )
