"""
SettlementCalculator unit tests.

Pure tests: WorkerInfo snapshots are built by hand and attendance comes
from the in-memory StaticAttendanceSource.  No database.

Covers:
- Bonus formula: notional base, absence penalty, optional advance deduction
- Salary formula: per-day pricing with the captured rate, half-day crediting
- Adjustments: extra amounts, proposed deposits, rounding
- Per-worker isolation of failures
- Whole-request validation
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.domain.calculator import (
    SettlementCalculator,
    month_period,
    overtime_of,
    tally_attendance,
    validate_period,
)
from payroll_kernel.domain.dtos import (
    AttendanceRecord,
    SettlementAdjustments,
    WorkerAdjustment,
    WorkerInfo,
)
from payroll_kernel.domain.values import AttendanceStatus, SettlementKind
from payroll_kernel.exceptions import InvalidAmountError, InvalidPeriodError
from tests.conftest import JAN_END, JAN_START, StaticAttendanceSource


def _worker(code="W-001", rate="50", daily="8", balance="0", active=True):
    return WorkerInfo(
        id=uuid4(),
        worker_code=code,
        name=f"Worker {code}",
        hourly_rate=Decimal(rate),
        daily_working_hours=Decimal(daily),
        is_active=active,
        balance=Decimal(balance),
        entry_count=0,
        version=0,
    )


@pytest.fixture
def calculator():
    return SettlementCalculator()


# =========================================================================
# Bonus
# =========================================================================


class TestBonus:
    def test_absence_penalty_reduces_notional_base(self, calculator):
        """30 x 8 x 50 = 12000, five absences at 100 -> 11500."""
        worker = _worker()
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 5, status=AttendanceStatus.ABSENT)

        draft = calculator.calculate(
            SettlementKind.BONUS,
            JAN_START,
            JAN_END,
            [worker],
            source,
            SettlementAdjustments(penalty_per_absent_day=Decimal("100")),
        )

        line = draft.line_for(worker.id)
        assert line.base_amount == Decimal("12000.00")
        assert line.days_absent == 5
        assert line.penalty_amount == Decimal("500.00")
        assert line.advance_deduction == Decimal("0")
        assert line.extra_amount == Decimal("0")
        assert line.proposed_deposit == Decimal("0")
        assert line.final_amount == Decimal("11500.00")
        assert draft.failures == ()

    def test_base_ignores_attendance(self, calculator):
        worker = _worker()
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 3)

        draft = calculator.calculate("bonus", JAN_START, JAN_END, [worker], source)

        assert draft.line_for(worker.id).base_amount == Decimal("12000.00")
        assert draft.line_for(worker.id).days_present == 3

    def test_deduct_advance_is_capped_by_balance(self, calculator):
        worker = _worker(balance="800")
        draft = calculator.calculate(
            SettlementKind.BONUS,
            JAN_START,
            JAN_END,
            [worker],
            StaticAttendanceSource(),
            SettlementAdjustments(deduct_advance=True),
        )

        line = draft.line_for(worker.id)
        assert line.advance_deduction == Decimal("800")
        assert line.advance_balance_at_calc == Decimal("800")
        assert line.final_amount == Decimal("11200.00")

    def test_deduct_advance_is_capped_by_net_bonus(self, calculator):
        worker = _worker(balance="20000")
        draft = calculator.calculate(
            SettlementKind.BONUS,
            JAN_START,
            JAN_END,
            [worker],
            StaticAttendanceSource(),
            SettlementAdjustments(deduct_advance=True),
        )

        line = draft.line_for(worker.id)
        assert line.advance_deduction == Decimal("12000.00")
        assert line.final_amount == Decimal("0")

    def test_advance_not_deducted_by_default(self, calculator):
        worker = _worker(balance="800")
        draft = calculator.calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, [worker], StaticAttendanceSource()
        )
        assert draft.line_for(worker.id).advance_deduction == Decimal("0")
        assert draft.line_for(worker.id).final_amount == Decimal("12000.00")

    def test_notional_month_is_configurable(self):
        calculator = SettlementCalculator(bonus_notional_days=26)
        worker = _worker()
        draft = calculator.calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, [worker], StaticAttendanceSource()
        )
        assert draft.line_for(worker.id).base_amount == Decimal("10400.00")

    def test_deposit_and_extra_flow_into_final(self, calculator):
        worker = _worker(balance="800")
        adjustments = SettlementAdjustments(
            per_worker={
                worker.id: WorkerAdjustment(
                    extra_amount=Decimal("250"), proposed_deposit=Decimal("300"), notes="festival"
                )
            }
        )
        draft = calculator.calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, [worker], StaticAttendanceSource(), adjustments
        )

        line = draft.line_for(worker.id)
        assert line.final_amount == Decimal("11950.00")
        assert line.notes == "festival"


# =========================================================================
# Salary
# =========================================================================


class TestSalary:
    def test_daily_pricing_by_status(self, calculator):
        worker = _worker()
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 20)
        source.add_days(worker.id, date(2024, 1, 21), 2, status=AttendanceStatus.HALF_DAY)
        source.add_days(worker.id, date(2024, 1, 23), 1, status=AttendanceStatus.HOLIDAY)
        source.add_days(worker.id, date(2024, 1, 24), 1, status=AttendanceStatus.ABSENT)

        draft = calculator.calculate(SettlementKind.SALARY, JAN_START, JAN_END, [worker], source)

        line = draft.line_for(worker.id)
        assert (line.days_present, line.days_half, line.days_holiday, line.days_absent) == (20, 2, 1, 1)
        assert line.hours_worked == Decimal("176")
        assert line.base_amount == Decimal("8800.00")
        assert line.penalty_amount == Decimal("0")
        assert line.final_amount == Decimal("8800.00")

    def test_half_day_always_credits_half_the_daily_hours(self, calculator):
        worker = _worker(daily="9")
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 1, status=AttendanceStatus.HALF_DAY, hours="2")

        line = calculator.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker], source
        ).line_for(worker.id)

        assert line.hours_worked == Decimal("4.5")
        assert line.base_amount == Decimal("225.00")

    def test_each_day_uses_its_captured_rate(self, calculator):
        worker = _worker(rate="60")
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 2, rate="50")
        source.add_days(worker.id, date(2024, 1, 3), 1, rate="60")

        line = calculator.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker], source
        ).line_for(worker.id)

        assert line.base_amount == Decimal("1280.00")

    def test_missing_days_are_not_paid(self, calculator):
        worker = _worker()
        line = calculator.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker], StaticAttendanceSource()
        ).line_for(worker.id)

        assert line.base_amount == Decimal("0")
        assert line.hours_worked == Decimal("0")

    def test_penalty_does_not_apply_to_salary(self, calculator):
        worker = _worker()
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 3, status=AttendanceStatus.ABSENT)

        line = calculator.calculate(
            SettlementKind.SALARY,
            JAN_START,
            JAN_END,
            [worker],
            source,
            SettlementAdjustments(penalty_per_absent_day=Decimal("100"), deduct_advance=True),
        ).line_for(worker.id)

        assert line.penalty_amount == Decimal("0")
        assert line.advance_deduction == Decimal("0")

    def test_deposit_is_subtracted(self, calculator):
        worker = _worker(balance="800")
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 20)
        adjustments = SettlementAdjustments(
            per_worker={worker.id: WorkerAdjustment(proposed_deposit=Decimal("800"))}
        )

        line = calculator.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker], source, adjustments
        ).line_for(worker.id)

        assert line.final_amount == line.base_amount - Decimal("800")

    def test_final_amount_is_never_negative(self, calculator):
        worker = _worker(balance="100")
        adjustments = SettlementAdjustments(
            per_worker={worker.id: WorkerAdjustment(proposed_deposit=Decimal("100"))}
        )

        line = calculator.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker], StaticAttendanceSource(), adjustments
        ).line_for(worker.id)

        assert line.final_amount == Decimal("0")

    def test_base_is_rounded_half_up(self, calculator):
        worker = _worker(rate="10.333")
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 3, hours="7.5", rate="10.333")

        line = calculator.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker], source
        ).line_for(worker.id)

        assert line.base_amount == Decimal("232.49")


# =========================================================================
# Per-worker failures
# =========================================================================


class TestFailures:
    def test_attendance_failure_is_isolated(self, calculator):
        good, bad = _worker("W-001"), _worker("W-002")
        source = StaticAttendanceSource(fail_for=[bad.id])
        source.add_days(good.id, JAN_START, 5)

        draft = calculator.calculate(SettlementKind.SALARY, JAN_START, JAN_END, [good, bad], source)

        assert draft.worker_ids == (good.id,)
        assert draft.failed_worker_ids == (bad.id,)
        failure = draft.failures[0]
        assert failure.code == "ATTENDANCE_UNAVAILABLE"
        assert (failure.period_start, failure.period_end) == (JAN_START, JAN_END)
        assert failure.retryable is False

    def test_unexpected_source_error_becomes_attendance_unavailable(self, calculator):
        class Exploding:
            def list_attendance(self, worker_id, period_start, period_end):
                raise RuntimeError("connection reset")

        worker = _worker()
        draft = calculator.calculate(SettlementKind.SALARY, JAN_START, JAN_END, [worker], Exploding())

        assert draft.lines == ()
        assert draft.failures[0].code == "ATTENDANCE_UNAVAILABLE"
        assert "connection reset" in draft.failures[0].message

    def test_untrustworthy_records_are_rejected(self, calculator):
        worker = _worker()

        class OutOfRange:
            def list_attendance(self, worker_id, period_start, period_end):
                return [
                    AttendanceRecord(
                        worker_id=worker_id,
                        work_date=period_end + timedelta(days=1),
                        status=AttendanceStatus.PRESENT,
                        hours_worked=Decimal("8"),
                        hourly_rate=Decimal("50"),
                    )
                ]

        draft = calculator.calculate(SettlementKind.SALARY, JAN_START, JAN_END, [worker], OutOfRange())
        assert draft.failures[0].code == "ATTENDANCE_UNAVAILABLE"

    def test_duplicate_days_are_rejected(self, calculator):
        worker = _worker()
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 1)
        source.add_days(worker.id, JAN_START, 1)

        draft = calculator.calculate(SettlementKind.SALARY, JAN_START, JAN_END, [worker], source)
        assert draft.failures[0].code == "ATTENDANCE_UNAVAILABLE"

    def test_inactive_worker_is_reported_without_reading_attendance(self, calculator):
        worker = _worker(active=False)
        source = StaticAttendanceSource()

        draft = calculator.calculate(SettlementKind.BONUS, JAN_START, JAN_END, [worker], source)

        assert draft.failures[0].code == "WORKER_INACTIVE"
        assert source.calls == []

    def test_deposit_above_balance_fails_that_worker(self, calculator):
        worker = _worker(balance="100")
        adjustments = SettlementAdjustments(
            per_worker={worker.id: WorkerAdjustment(proposed_deposit=Decimal("100.01"))}
        )

        draft = calculator.calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, [worker], StaticAttendanceSource(), adjustments
        )

        assert draft.failures[0].code == "INSUFFICIENT_BALANCE"

    def test_negative_extra_fails_that_worker(self, calculator):
        worker = _worker()
        adjustments = SettlementAdjustments(
            per_worker={worker.id: WorkerAdjustment(extra_amount=Decimal("-1"))}
        )

        draft = calculator.calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, [worker], StaticAttendanceSource(), adjustments
        )

        assert draft.failures[0].code == "INVALID_AMOUNT"

    def test_upstream_failures_are_carried(self, calculator):
        from payroll_kernel.domain.dtos import WorkerFailure

        missing = WorkerFailure(worker_id=uuid4(), code="WORKER_NOT_FOUND", message="gone")
        draft = calculator.calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, [], StaticAttendanceSource(), failures=[missing]
        )
        assert draft.failures == (missing,)


# =========================================================================
# Whole-request validation and ordering
# =========================================================================


class TestRequest:
    def test_reversed_period_raises(self, calculator):
        with pytest.raises(InvalidPeriodError):
            calculator.calculate(
                SettlementKind.BONUS, JAN_END, JAN_START, [_worker()], StaticAttendanceSource()
            )

    def test_validate_period_accepts_single_day(self):
        validate_period(JAN_START, JAN_START)

    def test_negative_penalty_raises(self, calculator):
        with pytest.raises(InvalidAmountError):
            calculator.calculate(
                SettlementKind.BONUS,
                JAN_START,
                JAN_END,
                [_worker()],
                StaticAttendanceSource(),
                SettlementAdjustments(penalty_per_absent_day=Decimal("-5")),
            )

    def test_unknown_kind_raises(self, calculator):
        with pytest.raises(ValueError):
            calculator.calculate("overtime", JAN_START, JAN_END, [], StaticAttendanceSource())

    def test_lines_are_ordered_by_worker_code(self, calculator):
        workers = [_worker("W-003"), _worker("W-001"), _worker("W-002")]
        draft = calculator.calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, workers, StaticAttendanceSource()
        )
        assert [ln.worker_code for ln in draft.lines] == ["W-001", "W-002", "W-003"]


class TestTally:
    def test_empty(self):
        tally = tally_attendance([], Decimal("8"))
        assert tally.hours_worked == Decimal("0")
        assert tally.gross_pay == Decimal("0")

    def test_absent_days_carry_no_pay(self):
        worker = _worker()
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 2, status=AttendanceStatus.ABSENT)
        tally = tally_attendance(source.records, Decimal("8"))
        assert tally.days_absent == 2
        assert tally.gross_pay == Decimal("0")

    def test_overtime_counts_present_and_holiday_hours_above_the_day(self):
        worker = _worker()
        source = StaticAttendanceSource()
        source.add_days(worker.id, JAN_START, 2, hours="10")
        source.add_days(worker.id, JAN_START + timedelta(days=2), 1, status=AttendanceStatus.HOLIDAY, hours="9")
        source.add_days(worker.id, JAN_START + timedelta(days=3), 1, status=AttendanceStatus.HALF_DAY, hours="12")
        source.add_days(worker.id, JAN_START + timedelta(days=4), 1, hours="6")

        tally = tally_attendance(source.records, Decimal("8"))

        assert tally.overtime_hours == Decimal("5")
        assert tally.overtime_pay == Decimal("250")
        assert tally.hours_worked == Decimal("39")
        assert [overtime_of(r, Decimal("8")) for r in source.records] == [
            Decimal("2"),
            Decimal("2"),
            Decimal("1"),
            Decimal("0"),
            Decimal("0"),
        ]


class TestMonthPeriod:
    def test_leap_february(self):
        assert month_period(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_december(self):
        assert month_period(2023, 12) == (date(2023, 12, 1), date(2023, 12, 31))

    @pytest.mark.parametrize("month", [0, 13])
    def test_bad_month(self, month):
        with pytest.raises(ValueError):
            month_period(2024, month)
