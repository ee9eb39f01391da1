"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A settlement batch covering fifty workers can succeed for forty-eight and
fail for two.  The caller needs to know exactly which two, why, and whether
retrying makes sense.  Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (worker_id, period_start/end, amounts)

Example:
    try:
        ledger.append(worker_id, EntryKind.DEPOSIT, amount, notes, today)
    except InsufficientBalanceError as e:
        reply(code=e.code, worker=e.worker_id, balance=e.balance)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- LedgerError
    |   +-- InvalidAmountError
    |   +-- InsufficientBalanceError
    |
    +-- SettlementError
    |   +-- InvalidPeriodError
    |   +-- PeriodAlreadyLockedError
    |   +-- SnapshotNotFoundError
    |   +-- SnapshotAlreadyDeletedError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- AttendanceError
    |   +-- AttendanceUnavailableError
    |
    +-- WorkerError
    |   +-- WorkerNotFoundError
    |   +-- WorkerAlreadyExistsError
    |   +-- WorkerInactiveError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Ledger          | INVALID_AMOUNT              | Non-positive / non-finite amount
                | INSUFFICIENT_BALANCE        | Deposit would drive balance negative
----------------|-----------------------------|-----------------------------------------
Settlement      | INVALID_PERIOD              | period_start after period_end
                | PERIOD_ALREADY_LOCKED       | Live snapshot already covers the period
                | SNAPSHOT_NOT_FOUND          | Snapshot id doesn't exist
                | SNAPSHOT_ALREADY_DELETED    | Snapshot was already reversed
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Worker version moved under a writer
----------------|-----------------------------|-----------------------------------------
Attendance      | ATTENDANCE_UNAVAILABLE      | Source failed or returned partial data
----------------|-----------------------------|-----------------------------------------
Worker          | WORKER_NOT_FOUND            | Worker id doesn't exist
                | WORKER_ALREADY_EXISTS       | Duplicate worker_code on onboarding
                | WORKER_INACTIVE             | Settlement requested for a deactivated worker
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. RETRYABLE vs. FINAL:

    except PayrollKernelError as e:
        if e.retryable:      # only ConcurrentModificationError
            re_fetch_and_retry()
        else:
            report(e.code)

2. PER-WORKER REPORTING: calculation and commit never raise for a single
   worker's failure; they return WorkerFailure records built from these
   exceptions (see domain/dtos.py), so one bad worker never aborts the batch.

===============================================================================
"""

from datetime import date
from decimal import Decimal
from typing import Any


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.  Worker/period context is None unless the
    subclass sets it.
    """

    code: str = "PAYROLL_KERNEL_ERROR"
    retryable: bool = False

    worker_id: Any = None
    period_start: date | None = None
    period_end: date | None = None


# Ledger-related exceptions


class LedgerError(PayrollKernelError):
    """Base exception for ledger errors."""

    code: str = "LEDGER_ERROR"


class InvalidAmountError(LedgerError):
    """Amount is zero, negative, NaN, infinite or not a number at all."""

    code: str = "INVALID_AMOUNT"

    def __init__(
        self,
        amount: Any,
        field: str = "amount",
        worker_id: Any = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ):
        self.amount = str(amount)
        self.field = field
        self.worker_id = worker_id
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(f"Invalid {field}: {amount!r}")


class InsufficientBalanceError(LedgerError):
    """A deposit (or proposed deposit) exceeds the worker's balance."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        worker_id: Any,
        requested: Decimal,
        balance: Decimal,
        period_start: date | None = None,
        period_end: date | None = None,
    ):
        self.worker_id = worker_id
        self.requested = str(requested)
        self.balance = str(balance)
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Deposit {requested} exceeds balance {balance} for worker {worker_id}"
        )


# Settlement-related exceptions


class SettlementError(PayrollKernelError):
    """Base exception for settlement errors."""

    code: str = "SETTLEMENT_ERROR"


class InvalidPeriodError(SettlementError):
    """Period boundaries are reversed."""

    code: str = "INVALID_PERIOD"

    def __init__(self, period_start: date, period_end: date):
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"period_start ({period_start}) cannot be after period_end ({period_end})"
        )


class PeriodAlreadyLockedError(SettlementError):
    """A live (non-deleted) snapshot already covers this worker and period."""

    code: str = "PERIOD_ALREADY_LOCKED"

    def __init__(
        self,
        worker_id: Any,
        kind: str,
        period_start: date,
        period_end: date,
        snapshot_id: Any = None,
    ):
        self.worker_id = worker_id
        self.kind = kind
        self.period_start = period_start
        self.period_end = period_end
        self.snapshot_id = None if snapshot_id is None else str(snapshot_id)
        super().__init__(
            f"{kind} period {period_start}..{period_end} for worker {worker_id} "
            f"is locked by snapshot {snapshot_id}"
        )


class SnapshotNotFoundError(SettlementError):
    """History snapshot with given ID was not found."""

    code: str = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_id: Any):
        self.snapshot_id = str(snapshot_id)
        super().__init__(f"History snapshot not found: {snapshot_id}")


class SnapshotAlreadyDeletedError(SettlementError):
    """History snapshot was already deleted (its ledger effect reversed)."""

    code: str = "SNAPSHOT_ALREADY_DELETED"

    def __init__(self, snapshot_id: Any):
        self.snapshot_id = str(snapshot_id)
        super().__init__(f"History snapshot already deleted: {snapshot_id}")


# Concurrency-related exceptions


class ConcurrencyError(PayrollKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class ConcurrentModificationError(ConcurrencyError):
    """Optimistic version check on a worker account failed."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        worker_id: Any,
        expected_version: int,
        period_start: date | None = None,
        period_end: date | None = None,
    ):
        self.worker_id = worker_id
        self.expected_version = expected_version
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Worker {worker_id} was modified by another transaction "
            f"(expected version {expected_version})"
        )


# Attendance-related exceptions


class AttendanceError(PayrollKernelError):
    """Base exception for attendance source errors."""

    code: str = "ATTENDANCE_ERROR"


class AttendanceUnavailableError(AttendanceError):
    """
    Attendance source failed or returned data that cannot be trusted.

    Never treated as zero hours: the affected worker's draft is aborted.
    """

    code: str = "ATTENDANCE_UNAVAILABLE"

    def __init__(
        self,
        reason: str,
        worker_id: Any = None,
        period_start: date | None = None,
        period_end: date | None = None,
    ):
        self.reason = reason
        self.worker_id = worker_id
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Attendance unavailable for worker {worker_id} "
            f"({period_start}..{period_end}): {reason}"
        )


# Worker-related exceptions


class WorkerError(PayrollKernelError):
    """Base exception for worker account errors."""

    code: str = "WORKER_ERROR"


class WorkerNotFoundError(WorkerError):
    """Worker with given ID was not found."""

    code: str = "WORKER_NOT_FOUND"

    def __init__(self, worker_id: Any):
        self.worker_id = worker_id
        super().__init__(f"Worker not found: {worker_id}")


class WorkerAlreadyExistsError(WorkerError):
    """A worker with this worker_code is already onboarded."""

    code: str = "WORKER_ALREADY_EXISTS"

    def __init__(self, worker_code: str):
        self.worker_code = worker_code
        super().__init__(f"Worker already exists: {worker_code}")


class WorkerInactiveError(WorkerError):
    """Worker has been deactivated."""

    code: str = "WORKER_INACTIVE"

    def __init__(
        self,
        worker_id: Any,
        period_start: date | None = None,
        period_end: date | None = None,
    ):
        self.worker_id = worker_id
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(f"Worker {worker_id} is inactive")


# Immutability-related exceptions


class ImmutabilityError(PayrollKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    LedgerEntry and SnapshotLine rows are immutable from creation;
    HistorySnapshot rows only allow the one-way committed -> deleted move.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
