"""
WorkerAccountService -- the worker aggregate and its locking boundary.

Responsibility:
    Worker lifecycle (onboard, rate changes, deactivation), balance and
    history reads, and manual advance/deposit recording.  Resolves worker id
    lists into point-in-time WorkerInfo snapshots for draft calculation.

Architecture position:
    Kernel > Services -- owns its transaction boundaries.  Takes a session
    factory and opens one session per unit of work; ledger writes go through
    LedgerStore while holding the worker's lock from WorkerLockRegistry.

Invariants enforced:
    - All ledger writes for one worker are serialized with each other and
      with settlement commits/reversals (shared WorkerLockRegistry).
    - Workers are never deleted; deactivation is one-way.
    - No advances to deactivated workers.  Deposits are still accepted so
      outstanding advances can be repaid.

Failure modes:
    - WorkerAlreadyExistsError on duplicate worker_code.
    - WorkerNotFoundError, WorkerInactiveError.
    - InvalidAmountError on non-positive rates or hours.
    - Ledger errors from LedgerStore; ConcurrentModificationError only after
      max_commit_attempts fresh attempts.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from payroll_kernel.db.base import SYSTEM_ACTOR_ID
from payroll_kernel.db.engine import session_scope
from payroll_kernel.db.types import positive_money
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import LedgerEntryInfo, WorkerFailure, WorkerInfo
from payroll_kernel.domain.values import EntryKind
from payroll_kernel.exceptions import (
    WorkerAlreadyExistsError,
    WorkerInactiveError,
    WorkerNotFoundError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.worker import WorkerAccount
from payroll_kernel.services.base import retry_on_conflict
from payroll_kernel.services.ledger_store import LedgerStore
from payroll_kernel.services.locking import WorkerLockRegistry

logger = get_logger("services.worker")


class WorkerAccountService:
    """
    Aggregate root for worker accounts.

    Contract:
        Every public write method runs in its own committed transaction.
        record_advance/record_deposit hold the worker lock for the whole
        validate + append + commit sequence.

    Non-goals:
        - Does not compute settlements.
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

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def onboard(
        self,
        worker_code: str,
        name: str,
        hourly_rate: Decimal | int | str,
        daily_working_hours: Decimal | int | str,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> WorkerInfo:
        """Create a worker with a zero balance."""
        hourly_rate = positive_money(hourly_rate, field="hourly_rate")
        daily_working_hours = positive_money(daily_working_hours, field="daily_working_hours")

        try:
            with session_scope(self._session_factory) as session:
                existing = session.execute(
                    select(WorkerAccount.id).where(WorkerAccount.worker_code == worker_code)
                ).scalar_one_or_none()
                if existing is not None:
                    raise WorkerAlreadyExistsError(worker_code)

                worker = WorkerAccount(
                    worker_code=worker_code,
                    name=name,
                    hourly_rate=hourly_rate,
                    daily_working_hours=daily_working_hours,
                    is_active=True,
                    balance=Decimal("0"),
                    entry_count=0,
                    version=0,
                    created_by_id=actor_id,
                )
                session.add(worker)
                session.flush()
                info = WorkerInfo.from_model(worker)
        except IntegrityError as exc:
            raise WorkerAlreadyExistsError(worker_code) from exc

        logger.info(
            "worker_onboarded",
            extra={
                "worker_id": str(info.id),
                "worker_code": worker_code,
                "hourly_rate": str(hourly_rate),
                "daily_working_hours": str(daily_working_hours),
            },
        )
        return info

    def update_rates(
        self,
        worker_id: UUID,
        hourly_rate: Decimal | int | str | None = None,
        daily_working_hours: Decimal | int | str | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> WorkerInfo:
        """
        Change a worker's current rate and/or daily hours.

        Already-recorded attendance and committed snapshots keep their own
        copies; only future attendance and future drafts see the change.
        """
        if hourly_rate is not None:
            hourly_rate = positive_money(hourly_rate, field="hourly_rate")
        if daily_working_hours is not None:
            daily_working_hours = positive_money(daily_working_hours, field="daily_working_hours")

        with self._locks.hold(worker_id):
            with session_scope(self._session_factory) as session:
                worker = self._get(session, worker_id)
                old_rate = worker.hourly_rate
                if hourly_rate is not None:
                    worker.hourly_rate = hourly_rate
                if daily_working_hours is not None:
                    worker.daily_working_hours = daily_working_hours
                worker.updated_by_id = actor_id
                session.flush()
                info = WorkerInfo.from_model(worker)

        logger.info(
            "worker_rates_updated",
            extra={
                "worker_id": str(worker_id),
                "old_hourly_rate": str(old_rate),
                "hourly_rate": str(info.hourly_rate),
                "daily_working_hours": str(info.daily_working_hours),
            },
        )
        return info

    def deactivate(self, worker_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID) -> WorkerInfo:
        """Deactivate a worker.  One-way; the balance is left as it is."""
        with self._locks.hold(worker_id):
            with session_scope(self._session_factory) as session:
                worker = self._get(session, worker_id)
                if not worker.is_active:
                    raise WorkerInactiveError(worker_id)
                worker.is_active = False
                worker.deactivated_at = self._clock.now()
                worker.updated_by_id = actor_id
                session.flush()
                info = WorkerInfo.from_model(worker)

        logger.info(
            "worker_deactivated",
            extra={"worker_id": str(worker_id), "balance": str(info.balance)},
        )
        return info

    # =========================================================================
    # Reads
    # =========================================================================

    def get_worker(self, worker_id: UUID) -> WorkerInfo:
        with session_scope(self._session_factory) as session:
            return WorkerInfo.from_model(self._get(session, worker_id))

    def list_workers(self, active: bool | None = None) -> tuple[WorkerInfo, ...]:
        """Workers ordered by worker_code, optionally filtered by is_active."""
        with session_scope(self._session_factory) as session:
            query = select(WorkerAccount).order_by(WorkerAccount.worker_code)
            if active is not None:
                query = query.where(WorkerAccount.is_active == active)
            return tuple(WorkerInfo.from_model(w) for w in session.execute(query).scalars())

    def balance(self, worker_id: UUID) -> Decimal:
        with session_scope(self._session_factory) as session:
            return LedgerStore(session, self._clock).balance_of(worker_id)

    def history(self, worker_id: UUID) -> Sequence[LedgerEntryInfo]:
        with session_scope(self._session_factory) as session:
            return LedgerStore(session, self._clock).history_of(worker_id)

    def resolve_workers(
        self,
        worker_ids: Iterable[UUID] | None,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> tuple[tuple[WorkerInfo, ...], tuple[WorkerFailure, ...]]:
        """
        Snapshot the workers a calculation should cover.

        None means every active worker.  Explicit ids that do not exist
        come back as WORKER_NOT_FOUND failures; inactive ones are returned
        so the calculator can report them.
        """
        with session_scope(self._session_factory) as session:
            if worker_ids is None:
                workers = session.execute(
                    select(WorkerAccount)
                    .where(WorkerAccount.is_active.is_(True))
                    .order_by(WorkerAccount.worker_code)
                ).scalars().all()
                return tuple(WorkerInfo.from_model(w) for w in workers), ()

            infos: list[WorkerInfo] = []
            failures: list[WorkerFailure] = []
            for worker_id in dict.fromkeys(worker_ids):
                worker = session.get(WorkerAccount, worker_id)
                if worker is None:
                    failures.append(
                        WorkerFailure.from_error(
                            WorkerNotFoundError(worker_id), worker_id, period_start, period_end
                        )
                    )
                else:
                    infos.append(WorkerInfo.from_model(worker))
            return tuple(infos), tuple(failures)

    # =========================================================================
    # Manual ledger entries
    # =========================================================================

    def record_advance(
        self,
        worker_id: UUID,
        amount: Decimal | int | str,
        notes: str = "",
        entry_date: date | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> LedgerEntryInfo:
        """Give a worker money ahead of earned pay."""
        return self._record(EntryKind.ADVANCE, worker_id, amount, notes, entry_date, actor_id)

    def record_deposit(
        self,
        worker_id: UUID,
        amount: Decimal | int | str,
        notes: str = "",
        entry_date: date | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> LedgerEntryInfo:
        """Record a repayment outside any settlement."""
        return self._record(EntryKind.DEPOSIT, worker_id, amount, notes, entry_date, actor_id)

    def _record(
        self,
        kind: EntryKind,
        worker_id: UUID,
        amount,
        notes: str,
        entry_date: date | None,
        actor_id: UUID,
    ) -> LedgerEntryInfo:
        def attempt() -> LedgerEntryInfo:
            with session_scope(self._session_factory) as session:
                if kind == EntryKind.ADVANCE:
                    worker = self._get(session, worker_id)
                    if not worker.is_active:
                        raise WorkerInactiveError(worker_id)
                return LedgerStore(session, self._clock).append(
                    worker_id,
                    kind,
                    amount,
                    notes,
                    entry_date,
                    actor_id=actor_id,
                )

        with LogContext.bind(worker_id=worker_id, actor_id=actor_id):
            with self._locks.hold(worker_id):
                return retry_on_conflict(attempt, self._max_attempts, f"record_{kind.value}")

    @staticmethod
    def _get(session: Session, worker_id: UUID) -> WorkerAccount:
        worker = session.get(WorkerAccount, worker_id)
        if worker is None:
            raise WorkerNotFoundError(worker_id)
        return worker
