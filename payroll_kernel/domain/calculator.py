"""
SettlementCalculator -- pure computation of draft settlements.

Responsibility:
    Turns attendance, a point-in-time worker balance, and caller adjustments
    into a DraftSettlement.  Reads the AttendanceSource; writes nothing.

Architecture position:
    Kernel > Domain -- pure functional core.  No session, no ORM, no clock.
    The only collaborator it touches is the injected AttendanceSource.

Invariants enforced:
    - Draft purity: identical inputs give an equal DraftSettlement with an
      identical fingerprint, and no ledger state is read beyond the
      WorkerInfo balances handed in.
    - Per-worker isolation: a worker whose attendance, adjustments or status
      is bad ends up in draft.failures; every other worker still gets a line.
    - Monetary results are rounded once, with round_money().

Failure modes:
    - InvalidPeriodError if period_start > period_end (whole request).
    - InvalidAmountError if penalty_per_absent_day is negative (whole request).
    - Per worker, recorded as WorkerFailure: AttendanceUnavailableError,
      InvalidAmountError, InsufficientBalanceError, WorkerInactiveError.

Algorithms:
    Bonus:
        base      = notional_days x notional_hours_per_day x hourly_rate
        penalty   = absent_days x penalty_per_absent_day
        advance   = min(balance, max(0, base - penalty)) if deduct_advance else 0
        final     = max(0, base - penalty - advance + extra - deposit)
    Salary:
        base      = sum of daily pay (present/holiday: hours x day rate,
                    half-day: daily_working_hours / 2 x day rate, absent: 0)
        final     = max(0, base + extra - deposit)
"""

import calendar
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from payroll_kernel.db.types import ZERO, non_negative_money, round_money
from payroll_kernel.domain.attendance import AttendanceSource, checked_attendance
from payroll_kernel.domain.dtos import (
    AttendanceRecord,
    AttendanceTally,
    DraftLine,
    DraftSettlement,
    SettlementAdjustments,
    WorkerFailure,
    WorkerInfo,
)
from payroll_kernel.domain.values import AttendanceStatus, SettlementKind
from payroll_kernel.exceptions import (
    AttendanceUnavailableError,
    InsufficientBalanceError,
    InvalidPeriodError,
    PayrollKernelError,
    WorkerInactiveError,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("domain.calculator")


def validate_period(period_start: date, period_end: date) -> None:
    """Raise InvalidPeriodError unless period_start <= period_end."""
    if period_start > period_end:
        raise InvalidPeriodError(period_start, period_end)


def overtime_of(record: AttendanceRecord, daily_working_hours: Decimal) -> Decimal:
    """Hours above daily_working_hours on one present or holiday day."""
    if record.status not in (AttendanceStatus.PRESENT, AttendanceStatus.HOLIDAY):
        return ZERO
    return max(ZERO, record.hours_worked - daily_working_hours)


def month_period(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month; ValueError for a bad month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def tally_attendance(
    records: Iterable[AttendanceRecord],
    daily_working_hours: Decimal,
) -> AttendanceTally:
    """
    Count days by status and add up credited hours and gross pay.

    Half-days are always credited daily_working_hours / 2, whatever the
    record says.  Each day is priced at the rate captured on that record.
    Overtime is reported alongside and is already part of hours and pay.
    """
    present = absent = half = holiday = 0
    hours = ZERO
    pay = ZERO
    overtime = ZERO
    overtime_pay = ZERO
    half_hours = daily_working_hours / 2

    for record in records:
        if record.status == AttendanceStatus.ABSENT:
            absent += 1
            continue
        if record.status == AttendanceStatus.HALF_DAY:
            half += 1
            day_hours = half_hours
        elif record.status == AttendanceStatus.HOLIDAY:
            holiday += 1
            day_hours = record.hours_worked
        else:
            present += 1
            day_hours = record.hours_worked
        hours += day_hours
        pay += day_hours * record.hourly_rate
        extra_hours = overtime_of(record, daily_working_hours)
        overtime += extra_hours
        overtime_pay += extra_hours * record.hourly_rate

    return AttendanceTally(
        days_present=present,
        days_absent=absent,
        days_half=half,
        days_holiday=holiday,
        hours_worked=hours,
        gross_pay=pay,
        overtime_hours=overtime,
        overtime_pay=overtime_pay,
    )


class SettlementCalculator:
    """
    Computes DraftSettlements.

    Contract:
        calculate() never raises for a single worker's problem; see
        draft.failures.  It never touches the ledger.

    Non-goals:
        - Does not resolve worker ids or load balances; callers pass
          WorkerInfo snapshots (see WorkerAccountService.resolve_workers).
        - Does not persist anything.
    """

    def __init__(
        self,
        bonus_notional_days: int = 30,
        bonus_notional_hours_per_day: Decimal = Decimal("8"),
        decimal_places: int = 2,
    ):
        self._notional_days = bonus_notional_days
        self._notional_hours = Decimal(str(bonus_notional_hours_per_day))
        self._places = decimal_places

    def _round(self, value: Decimal) -> Decimal:
        return round_money(value, self._places)

    def calculate(
        self,
        kind: SettlementKind | str,
        period_start: date,
        period_end: date,
        workers: Sequence[WorkerInfo],
        attendance: AttendanceSource,
        adjustments: SettlementAdjustments | None = None,
        failures: Iterable[WorkerFailure] = (),
    ) -> DraftSettlement:
        """
        Build a draft for every worker in `workers`.

        Args:
            kind: bonus or salary.
            period_start: First day of the period (inclusive).
            period_end: Last day of the period (inclusive).
            workers: Point-in-time worker snapshots, balances included.
            attendance: Source of daily attendance.
            adjustments: Caller adjustments; defaults to none.
            failures: Failures found upstream (unknown ids and the like),
                carried into the draft as-is.

        Returns:
            DraftSettlement with one line per successfully computed worker.
        """
        kind = SettlementKind(kind)
        validate_period(period_start, period_end)
        adjustments = adjustments or SettlementAdjustments()
        penalty_rate = non_negative_money(
            adjustments.penalty_per_absent_day, field="penalty_per_absent_day"
        )

        lines: list[DraftLine] = []
        failed: list[WorkerFailure] = list(failures)

        for worker in workers:
            try:
                if not worker.is_active:
                    raise WorkerInactiveError(worker.id, period_start, period_end)
                records = self._fetch_attendance(attendance, worker, period_start, period_end)
                line = self.compute_line(
                    kind,
                    worker,
                    records,
                    adjustments,
                    penalty_rate,
                    period_start,
                    period_end,
                )
            except PayrollKernelError as exc:
                failure = WorkerFailure.from_error(exc, worker.id, period_start, period_end)
                failed.append(failure)
                logger.warning(
                    "draft_worker_failed",
                    extra={
                        "worker_id": str(worker.id),
                        "error_code": failure.code,
                        "period_start": str(period_start),
                        "period_end": str(period_end),
                        "detail": failure.message,
                    },
                )
            else:
                lines.append(line)

        lines.sort(key=lambda ln: (ln.worker_code, str(ln.worker_id)))
        failed.sort(key=lambda f: str(f.worker_id))

        draft = DraftSettlement(
            kind=kind,
            period_start=period_start,
            period_end=period_end,
            lines=tuple(lines),
            failures=tuple(failed),
            adjustments=adjustments,
        )

        logger.info(
            "draft_calculated",
            extra={
                "kind": kind.value,
                "period_start": str(period_start),
                "period_end": str(period_end),
                "line_count": len(draft.lines),
                "failure_count": len(draft.failures),
                "total_final": str(draft.totals().final_amount),
            },
        )
        return draft

    def compute_line(
        self,
        kind: SettlementKind,
        worker: WorkerInfo,
        records: Sequence[AttendanceRecord],
        adjustments: SettlementAdjustments,
        penalty_rate: Decimal,
        period_start: date,
        period_end: date,
    ) -> DraftLine:
        """
        Compute one worker's line from already-validated attendance.

        Raises:
            WorkerInactiveError: Worker is deactivated.
            InvalidAmountError: Negative extra amount or deposit.
            InsufficientBalanceError: Deposit exceeds the balance read.
        """
        if not worker.is_active:
            raise WorkerInactiveError(worker.id, period_start, period_end)

        adjustment = adjustments.for_worker(worker.id)
        extra = self._round(non_negative_money(adjustment.extra_amount, field="extra_amount"))
        deposit = self._round(
            non_negative_money(adjustment.proposed_deposit, field="proposed_deposit")
        )
        balance = worker.balance
        if deposit > balance:
            raise InsufficientBalanceError(worker.id, deposit, balance, period_start, period_end)

        tally = tally_attendance(records, worker.daily_working_hours)

        if kind == SettlementKind.BONUS:
            base = self._round(self._notional_days * self._notional_hours * worker.hourly_rate)
            penalty = self._round(tally.days_absent * penalty_rate)
            if adjustments.deduct_advance:
                advance = min(balance, max(ZERO, base - penalty))
            else:
                advance = ZERO
            final = max(ZERO, base - penalty - advance + extra - deposit)
        else:
            base = self._round(tally.gross_pay)
            penalty = ZERO
            advance = ZERO
            final = max(ZERO, base + extra - deposit)

        return DraftLine(
            worker_id=worker.id,
            worker_code=worker.worker_code,
            hourly_rate=worker.hourly_rate,
            days_present=tally.days_present,
            days_absent=tally.days_absent,
            days_half=tally.days_half,
            days_holiday=tally.days_holiday,
            hours_worked=tally.hours_worked,
            base_amount=base,
            penalty_amount=penalty,
            advance_deduction=advance,
            extra_amount=extra,
            proposed_deposit=deposit,
            advance_balance_at_calc=balance,
            final_amount=final,
            notes=adjustment.notes,
        )

    def _fetch_attendance(
        self,
        attendance: AttendanceSource,
        worker: WorkerInfo,
        period_start: date,
        period_end: date,
    ) -> tuple[AttendanceRecord, ...]:
        try:
            records = attendance.list_attendance(worker.id, period_start, period_end)
        except AttendanceUnavailableError as exc:
            if exc.worker_id is None:
                raise AttendanceUnavailableError(
                    exc.reason,
                    worker_id=worker.id,
                    period_start=period_start,
                    period_end=period_end,
                ) from exc
            raise
        except Exception as exc:
            raise AttendanceUnavailableError(
                f"{type(exc).__name__}: {exc}",
                worker_id=worker.id,
                period_start=period_start,
                period_end=period_end,
            ) from exc
        if records is None:
            raise AttendanceUnavailableError(
                "source returned no result",
                worker_id=worker.id,
                period_start=period_start,
                period_end=period_end,
            )
        return checked_attendance(records, worker.id, period_start, period_end)
