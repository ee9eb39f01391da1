"""
payroll_services.settlement_service -- Outer facade over the payroll kernel.

Responsibility:
    Creates every kernel service exactly once and wires them together
    around one shared WorkerLockRegistry, then exposes the request-level
    operations consumed by the UI/export layer: calculate, commit,
    history, ledger and delete_history, plus the worker lifecycle,
    attendance recording, summaries, the overtime report and
    reconciliation.

Architecture position:
    Services -- the only layer that reads PayrollConfig and turns it into
    kernel constructor arguments.  payroll_kernel never imports from here.

Invariants enforced:
    - Single-instance lifecycle: one lock registry, one committer, one
      reversal service, one worker service per facade.  Every ledger
      writer shares the same registry, so per-worker serialization holds
      across all entry points.
    - calculate() never writes; workers whose period is already locked are
      reported as PERIOD_ALREADY_LOCKED failures instead of drafted.
    - Every request runs with its own correlation_id bound in LogContext.

Failure modes:
    - Whole-request errors (InvalidPeriodError, InvalidAmountError on batch
      adjustments, SnapshotNotFoundError, ...) propagate as typed
      PayrollKernelError subclasses.
    - Per-worker problems are returned in DraftSettlement.failures and
      CommitResult.rejected, never raised.

Usage:
    from payroll_config import get_active_config
    from payroll_services import SettlementService

    service = SettlementService.from_config(get_active_config())
    draft = service.calculate("salary", date(2024, 1, 1), date(2024, 1, 31))
    result = service.commit(draft, actor_id=user_id)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from payroll_config.schema import PayrollConfig, SettlementPolicy
from payroll_kernel.db.base import SYSTEM_ACTOR_ID
from payroll_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url, session_scope
from payroll_kernel.db.immutability import register_immutability_listeners
from payroll_kernel.db.types import round_money
from payroll_kernel.domain.attendance import AttendanceSource, checked_attendance
from payroll_kernel.domain.calculator import (
    SettlementCalculator,
    month_period,
    overtime_of,
    tally_attendance,
    validate_period,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import (
    AttendanceRecord,
    CommitResult,
    DraftSettlement,
    HistorySnapshot,
    LedgerEntryInfo,
    OvertimeDay,
    OvertimeLine,
    OvertimeReport,
    ReconciliationReport,
    ReversalResult,
    SettlementAdjustments,
    WorkerFailure,
    WorkerInfo,
    WorkerSummary,
)
from payroll_kernel.domain.values import AttendanceStatus, PeriodState, SettlementKind
from payroll_kernel.exceptions import PeriodAlreadyLockedError
from payroll_kernel.logging_config import LogContext, configure_logging, get_logger
from payroll_kernel.selectors.attendance_selector import SqlAttendanceSource
from payroll_kernel.selectors.history_selector import HistorySelector
from payroll_kernel.selectors.ledger_selector import LedgerSelector
from payroll_kernel.services.attendance_recorder import AttendanceRecorder
from payroll_kernel.services.locking import WorkerLockRegistry
from payroll_kernel.services.reversal_service import SnapshotReversalService
from payroll_kernel.services.settlement_committer import SettlementCommitter
from payroll_kernel.services.worker_service import WorkerAccountService

logger = get_logger("services.settlement")


class SettlementService:
    """
    Request-level entry point for settlements, history and the ledger.

    Contract:
        Every public method opens and closes its own sessions through the
        injected session factory; callers never see a Session.

    Args:
        session_factory: Factory for the database the kernel writes to.
        clock: Time source; SystemClock by default.
        policy: Settlement tunables; SettlementPolicy() by default.
        attendance: External AttendanceSource.  When None, attendance is
            read from the attendance_records table.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
        attendance: AttendanceSource | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._policy = policy or SettlementPolicy()
        self._attendance = attendance

        # Shared by every ledger writer below
        self._locks = WorkerLockRegistry()

        self._workers = WorkerAccountService(
            session_factory,
            locks=self._locks,
            clock=self._clock,
            max_commit_attempts=self._policy.max_commit_attempts,
        )
        self._calculator = SettlementCalculator(
            bonus_notional_days=self._policy.bonus_notional_days,
            bonus_notional_hours_per_day=self._policy.bonus_notional_hours_per_day,
            decimal_places=self._policy.money_decimal_places,
        )
        self._committer = SettlementCommitter(
            session_factory,
            locks=self._locks,
            clock=self._clock,
            max_commit_attempts=self._policy.max_commit_attempts,
            lock_overlapping_periods=self._policy.lock_overlapping_periods,
        )
        self._reversals = SnapshotReversalService(
            session_factory,
            locks=self._locks,
            clock=self._clock,
            max_commit_attempts=self._policy.max_commit_attempts,
        )

    @classmethod
    def from_config(
        cls,
        config: PayrollConfig,
        clock: Clock | None = None,
        attendance: AttendanceSource | None = None,
    ) -> SettlementService:
        """
        Build the process-wide engine from config and wire a facade on it.

        Creates missing tables and installs the immutability listeners.
        """
        configure_logging(level=config.logging.level)
        engine = init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
        create_tables(engine)
        register_immutability_listeners()
        logger.info(
            "settlement_service_configured",
            extra={
                "config_id": config.config_id,
                "config_version": config.version,
                "checksum": config.checksum,
            },
        )
        return cls(
            get_session_factory(),
            clock=clock,
            policy=config.settlement,
            attendance=attendance,
        )

    @property
    def workers(self) -> WorkerAccountService:
        return self._workers

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def policy(self) -> SettlementPolicy:
        return self._policy

    # =========================================================================
    # Settlement
    # =========================================================================

    def calculate(
        self,
        kind: SettlementKind | str,
        period_start: date,
        period_end: date,
        worker_ids: Iterable[UUID] | None = None,
        adjustments: SettlementAdjustments | None = None,
    ) -> DraftSettlement:
        """
        Compute a draft for the given workers (all active ones by default).

        Nothing is persisted.  Unknown workers, inactive workers, workers
        with bad attendance and workers whose period is already committed
        come back in draft.failures.
        """
        kind = SettlementKind(kind)
        validate_period(period_start, period_end)

        with LogContext.bind(correlation_id=str(uuid4())):
            workers, failures = self._workers.resolve_workers(
                worker_ids, period_start, period_end
            )
            with session_scope(self._session_factory) as session:
                locked = HistorySelector(session).locked_workers(
                    [w.id for w in workers],
                    kind,
                    period_start,
                    period_end,
                    overlapping=self._policy.lock_overlapping_periods,
                )
                lock_failures = [
                    WorkerFailure.from_error(
                        PeriodAlreadyLockedError(
                            worker_id,
                            kind.value,
                            lock.period_start,
                            lock.period_end,
                            snapshot_id=lock.snapshot_id,
                        ),
                        worker_id,
                        period_start,
                        period_end,
                    )
                    for worker_id, lock in locked.items()
                ]
                return self._calculator.calculate(
                    kind,
                    period_start,
                    period_end,
                    [w for w in workers if w.id not in locked],
                    self._attendance_source(session),
                    adjustments,
                    failures=(*failures, *lock_failures),
                )

    def commit(
        self,
        draft: DraftSettlement,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> CommitResult:
        """Commit a reviewed draft; see SettlementCommitter.commit."""
        with LogContext.bind(correlation_id=str(uuid4())):
            return self._committer.commit(draft, actor_id)

    def delete_history(
        self,
        snapshot_id: UUID,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        reason: str | None = None,
    ) -> ReversalResult:
        """Reverse a committed snapshot and unlock its periods."""
        with LogContext.bind(correlation_id=str(uuid4())):
            return self._reversals.delete_snapshot(snapshot_id, actor_id, reason)

    def period_state(
        self,
        worker_id: UUID,
        kind: SettlementKind | str,
        period_start: date,
        period_end: date,
    ) -> PeriodState:
        with session_scope(self._session_factory) as session:
            return HistorySelector(session).period_state(
                worker_id, SettlementKind(kind), period_start, period_end
            )

    # =========================================================================
    # History and ledger reads
    # =========================================================================

    def history(
        self,
        worker_id: UUID | None = None,
        include_deleted: bool = False,
    ) -> tuple[HistorySnapshot, ...]:
        with session_scope(self._session_factory) as session:
            return HistorySelector(session).list_history(worker_id, include_deleted)

    def get_snapshot(self, snapshot_id: UUID) -> HistorySnapshot:
        with session_scope(self._session_factory) as session:
            return HistorySelector(session).get_snapshot(snapshot_id)

    def snapshot_rows(self, snapshot_id: UUID) -> list[dict[str, Any]]:
        with session_scope(self._session_factory) as session:
            return HistorySelector(session).snapshot_rows(snapshot_id)

    def ledger(self, worker_id: UUID) -> list[dict[str, Any]]:
        """Export rows: date, kind, amount, balance_after, notes."""
        with session_scope(self._session_factory) as session:
            return LedgerSelector(session).ledger_rows(worker_id)

    def ledger_entries(self, worker_id: UUID) -> Sequence[LedgerEntryInfo]:
        return self._workers.history(worker_id)

    def reconcile_all(self) -> tuple[ReconciliationReport, ...]:
        with session_scope(self._session_factory) as session:
            return LedgerSelector(session).reconcile_all()

    # =========================================================================
    # Workers and attendance
    # =========================================================================

    def onboard_worker(
        self,
        worker_code: str,
        name: str,
        hourly_rate: Decimal | int | str,
        daily_working_hours: Decimal | int | str,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> WorkerInfo:
        return self._workers.onboard(worker_code, name, hourly_rate, daily_working_hours, actor_id)

    def record_advance(
        self,
        worker_id: UUID,
        amount: Decimal | int | str,
        notes: str = "",
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> LedgerEntryInfo:
        return self._workers.record_advance(worker_id, amount, notes, actor_id=actor_id)

    def record_deposit(
        self,
        worker_id: UUID,
        amount: Decimal | int | str,
        notes: str = "",
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> LedgerEntryInfo:
        return self._workers.record_deposit(worker_id, amount, notes, actor_id=actor_id)

    def record_attendance(
        self,
        worker_id: UUID,
        work_date: date,
        status: AttendanceStatus | str,
        hours_worked: Decimal | int | str | None = None,
        notes: str = "",
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> AttendanceRecord:
        """Record one day; held under the worker lock so a commit cannot interleave."""
        with LogContext.bind(worker_id=worker_id, actor_id=actor_id):
            with self._locks.hold(worker_id):
                with session_scope(self._session_factory) as session:
                    return AttendanceRecorder(session, self._clock).record(
                        worker_id, work_date, status, hours_worked, notes, actor_id
                    )

    def worker_summary(
        self,
        worker_id: UUID,
        period_start: date,
        period_end: date,
    ) -> WorkerSummary:
        """Days by status, hours and gross pay over a range, with the current balance."""
        validate_period(period_start, period_end)
        worker = self._workers.get_worker(worker_id)
        with session_scope(self._session_factory) as session:
            records = checked_attendance(
                self._attendance_source(session).list_attendance(
                    worker_id, period_start, period_end
                ),
                worker_id,
                period_start,
                period_end,
            )
        tally = tally_attendance(records, worker.daily_working_hours)
        return WorkerSummary(
            worker_id=worker.id,
            worker_code=worker.worker_code,
            period_start=period_start,
            period_end=period_end,
            days_present=tally.days_present,
            days_absent=tally.days_absent,
            days_half=tally.days_half,
            days_holiday=tally.days_holiday,
            hours_worked=tally.hours_worked,
            gross_pay=round_money(tally.gross_pay, self._policy.money_decimal_places),
            balance=worker.balance,
        )

    def overtime_report(self, year: int, month: int) -> OvertimeReport:
        """
        Hours above each worker's daily_working_hours for one calendar month.

        Only workers with overtime appear.  Overtime pay is priced at the
        rate captured on each day; the report changes nothing.

        Raises:
            ValueError: month is not 1..12.
        """
        period_start, period_end = month_period(year, month)
        workers = self._workers.list_workers()
        places = self._policy.money_decimal_places

        lines: list[OvertimeLine] = []
        with session_scope(self._session_factory) as session:
            source = self._attendance_source(session)
            for worker in workers:
                records = checked_attendance(
                    source.list_attendance(worker.id, period_start, period_end),
                    worker.id,
                    period_start,
                    period_end,
                )
                tally = tally_attendance(records, worker.daily_working_hours)
                if tally.overtime_hours <= 0:
                    continue
                days = []
                for record in records:
                    hours = overtime_of(record, worker.daily_working_hours)
                    if hours > 0:
                        days.append(
                            OvertimeDay(
                                work_date=record.work_date,
                                overtime_hours=hours,
                                overtime_pay=round_money(hours * record.hourly_rate, places),
                            )
                        )
                lines.append(
                    OvertimeLine(
                        worker_id=worker.id,
                        worker_code=worker.worker_code,
                        name=worker.name,
                        overtime_hours=tally.overtime_hours,
                        overtime_pay=round_money(tally.overtime_pay, places),
                        days=tuple(days),
                    )
                )

        report = OvertimeReport(
            year=year,
            month=month,
            period_start=period_start,
            period_end=period_end,
            lines=tuple(lines),
        )
        logger.info(
            "overtime_report_built",
            extra={
                "year": year,
                "month": month,
                "worker_count": len(report.lines),
                "total_overtime_hours": str(report.total_overtime_hours),
            },
        )
        return report

    def _attendance_source(self, session: Session) -> AttendanceSource:
        if self._attendance is not None:
            return self._attendance
        return SqlAttendanceSource(session)
