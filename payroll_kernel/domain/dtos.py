"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the kernel boundary:
    worker and ledger snapshots (WorkerInfo, LedgerEntryInfo), attendance
    input (AttendanceRecord), caller adjustments, the ephemeral
    DraftSettlement and its DraftLines, commit/reversal results, the
    persisted HistorySnapshot view, and reporting DTOs.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  from_model() class methods exist as boundary
    converters but are only invoked from the service and selector layers.

Invariants enforced:
    - Every DTO is a frozen dataclass; collections are tuples or read-only
      mappings.
    - DraftSettlement carries no timestamp and no identity, so two
      calculations over identical inputs are equal and fingerprint alike.

Data flow:
    AttendanceRecord + WorkerInfo + SettlementAdjustments
        -> DraftSettlement -> CommitResult / HistorySnapshot
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Any
from uuid import UUID

from payroll_kernel.domain.values import (
    AttendanceStatus,
    EntryKind,
    SettlementKind,
    SnapshotStatus,
)
from payroll_kernel.utils.hashing import hash_payload

if TYPE_CHECKING:
    from payroll_kernel.exceptions import PayrollKernelError
    from payroll_kernel.models.attendance import AttendanceRecordModel
    from payroll_kernel.models.history import HistorySnapshotModel, SnapshotLineModel
    from payroll_kernel.models.ledger import LedgerEntry as LedgerEntryModel
    from payroll_kernel.models.worker import WorkerAccount

_ZERO = Decimal("0")


# =============================================================================
# Workers and ledger
# =============================================================================


@dataclass(frozen=True)
class WorkerInfo:
    """
    Point-in-time view of a worker account.

    balance is the maintained running total as of the read; a draft computed
    from it records the value as advance_balance_at_calc.
    """

    id: UUID
    worker_code: str
    name: str
    hourly_rate: Decimal
    daily_working_hours: Decimal
    is_active: bool
    balance: Decimal
    entry_count: int
    version: int
    deactivated_at: datetime | None = None

    @property
    def half_day_hours(self) -> Decimal:
        return self.daily_working_hours / 2

    @classmethod
    def from_model(cls, model: WorkerAccount) -> WorkerInfo:
        return cls(
            id=model.id,
            worker_code=model.worker_code,
            name=model.name,
            hourly_rate=model.hourly_rate,
            daily_working_hours=model.daily_working_hours,
            is_active=model.is_active,
            balance=model.balance,
            entry_count=model.entry_count,
            version=model.version,
            deactivated_at=model.deactivated_at,
        )


@dataclass(frozen=True)
class LedgerEntryInfo:
    """Immutable view of one ledger entry."""

    id: UUID
    worker_id: UUID
    seq: int
    kind: EntryKind
    amount: Decimal
    entry_date: date
    notes: str
    balance_after: Decimal
    source_commit_id: UUID | None = None
    reversal_of_id: UUID | None = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount * self.kind.sign

    def to_row(self) -> dict[str, Any]:
        """Export projection: date, kind, amount, balance_after, notes."""
        return {
            "date": self.entry_date,
            "kind": self.kind.value,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "notes": self.notes,
        }

    @classmethod
    def from_model(cls, model: LedgerEntryModel) -> LedgerEntryInfo:
        return cls(
            id=model.id,
            worker_id=model.worker_id,
            seq=model.seq,
            kind=EntryKind(model.kind),
            amount=model.amount,
            entry_date=model.entry_date,
            notes=model.notes,
            balance_after=model.balance_after,
            source_commit_id=model.source_commit_id,
            reversal_of_id=model.reversal_of_id,
        )


# =============================================================================
# Attendance
# =============================================================================


@dataclass(frozen=True)
class AttendanceRecord:
    """
    One day of attendance, as handed over by an AttendanceSource.

    hourly_rate is the rate captured when the day was recorded.
    """

    worker_id: UUID
    work_date: date
    status: AttendanceStatus
    hours_worked: Decimal
    hourly_rate: Decimal

    @classmethod
    def from_model(cls, model: AttendanceRecordModel) -> AttendanceRecord:
        return cls(
            worker_id=model.worker_id,
            work_date=model.work_date,
            status=AttendanceStatus(model.status),
            hours_worked=model.hours_worked,
            hourly_rate=model.hourly_rate,
        )


@dataclass(frozen=True)
class AttendanceTally:
    """Day counts, credited hours, and gross pay over a set of records."""

    days_present: int = 0
    days_absent: int = 0
    days_half: int = 0
    days_holiday: int = 0
    hours_worked: Decimal = _ZERO
    gross_pay: Decimal = _ZERO
    overtime_hours: Decimal = _ZERO
    overtime_pay: Decimal = _ZERO


@dataclass(frozen=True)
class WorkerSummary:
    """Attendance summary for one worker over a date range."""

    worker_id: UUID
    worker_code: str
    period_start: date
    period_end: date
    days_present: int
    days_absent: int
    days_half: int
    days_holiday: int
    hours_worked: Decimal
    gross_pay: Decimal
    balance: Decimal


@dataclass(frozen=True)
class OvertimeDay:
    work_date: date
    overtime_hours: Decimal
    overtime_pay: Decimal


@dataclass(frozen=True)
class OvertimeLine:
    """One worker's hours above daily_working_hours in a month."""

    worker_id: UUID
    worker_code: str
    name: str
    overtime_hours: Decimal
    overtime_pay: Decimal
    days: tuple[OvertimeDay, ...] = ()


@dataclass(frozen=True)
class OvertimeReport:
    """
    Monthly overtime report.

    Read-only: overtime is priced at the captured day rate for reporting
    and never feeds a settlement.
    """

    year: int
    month: int
    period_start: date
    period_end: date
    lines: tuple[OvertimeLine, ...] = ()

    @property
    def total_overtime_hours(self) -> Decimal:
        return sum((line.overtime_hours for line in self.lines), _ZERO)

    @property
    def total_overtime_pay(self) -> Decimal:
        return sum((line.overtime_pay for line in self.lines), _ZERO)


# =============================================================================
# Adjustments
# =============================================================================


@dataclass(frozen=True)
class WorkerAdjustment:
    """Per-worker caller input for a settlement draft."""

    extra_amount: Decimal = _ZERO
    proposed_deposit: Decimal = _ZERO
    notes: str = ""


@dataclass(frozen=True)
class SettlementAdjustments:
    """
    Caller-supplied adjustments for one calculation request.

    Contract:
        penalty_per_absent_day and deduct_advance apply to bonus drafts only.
        per_worker is keyed by worker id; workers without an entry get a
        zero WorkerAdjustment.
    """

    penalty_per_absent_day: Decimal = _ZERO
    deduct_advance: bool = False
    per_worker: Mapping[UUID, WorkerAdjustment] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "per_worker", MappingProxyType(dict(self.per_worker)))

    def for_worker(self, worker_id: UUID) -> WorkerAdjustment:
        return self.per_worker.get(worker_id, WorkerAdjustment())

    def batch_dict(self) -> dict[str, Any]:
        """Batch-level adjustments as plain JSON-able data."""
        return {
            "penalty_per_absent_day": str(self.penalty_per_absent_day),
            "deduct_advance": self.deduct_advance,
        }


# =============================================================================
# Drafts
# =============================================================================


@dataclass(frozen=True)
class DraftLine:
    """
    One worker's computed settlement line.

    final_amount = max(0, base - penalty - advance_deduction + extra - deposit)
    """

    worker_id: UUID
    worker_code: str
    hourly_rate: Decimal
    days_present: int
    days_absent: int
    days_half: int
    days_holiday: int
    hours_worked: Decimal
    base_amount: Decimal
    penalty_amount: Decimal
    advance_deduction: Decimal
    extra_amount: Decimal
    proposed_deposit: Decimal
    advance_balance_at_calc: Decimal
    final_amount: Decimal
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class WorkerFailure:
    """Structured per-worker failure; enough to build a precise retry list."""

    worker_id: UUID
    code: str
    message: str
    period_start: date | None = None
    period_end: date | None = None
    retryable: bool = False

    @classmethod
    def from_error(
        cls,
        error: PayrollKernelError,
        worker_id: UUID,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> WorkerFailure:
        return cls(
            worker_id=worker_id,
            code=error.code,
            message=str(error),
            period_start=error.period_start or period_start,
            period_end=error.period_end or period_end,
            retryable=error.retryable,
        )

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class SettlementTotals:
    """Column sums over a set of lines (the summary card)."""

    worker_count: int
    base_amount: Decimal
    penalty_amount: Decimal
    advance_deduction: Decimal
    extra_amount: Decimal
    proposed_deposit: Decimal
    final_amount: Decimal

    @classmethod
    def from_lines(cls, lines: Iterable[DraftLine]) -> SettlementTotals:
        lines = tuple(lines)
        return cls(
            worker_count=len(lines),
            base_amount=sum((ln.base_amount for ln in lines), _ZERO),
            penalty_amount=sum((ln.penalty_amount for ln in lines), _ZERO),
            advance_deduction=sum((ln.advance_deduction for ln in lines), _ZERO),
            extra_amount=sum((ln.extra_amount for ln in lines), _ZERO),
            proposed_deposit=sum((ln.proposed_deposit for ln in lines), _ZERO),
            final_amount=sum((ln.final_amount for ln in lines), _ZERO),
        )


@dataclass(frozen=True)
class DraftSettlement:
    """
    Ephemeral, fully computed settlement preview.

    Contract:
        Never persisted and never given an identity.  Holds no lock.
        Recomputing with identical inputs yields an equal object with an
        identical fingerprint().

    Guarantees:
        - lines are ordered by (worker_code, worker_id).
        - failures are ordered by worker_id.
        - A worker appears in lines or in failures, never both.
    """

    kind: SettlementKind
    period_start: date
    period_end: date
    lines: tuple[DraftLine, ...] = ()
    failures: tuple[WorkerFailure, ...] = ()
    adjustments: SettlementAdjustments = field(default_factory=SettlementAdjustments)

    @property
    def worker_ids(self) -> tuple[UUID, ...]:
        return tuple(line.worker_id for line in self.lines)

    @property
    def failed_worker_ids(self) -> tuple[UUID, ...]:
        return tuple(f.worker_id for f in self.failures)

    def line_for(self, worker_id: UUID) -> DraftLine | None:
        for line in self.lines:
            if line.worker_id == worker_id:
                return line
        return None

    def totals(self) -> SettlementTotals:
        return SettlementTotals.from_lines(self.lines)

    def restricted_to(self, worker_ids: Iterable[UUID]) -> DraftSettlement:
        """Copy of this draft keeping only the given workers."""
        keep = frozenset(worker_ids)
        return replace(
            self,
            lines=tuple(ln for ln in self.lines if ln.worker_id in keep),
            failures=tuple(f for f in self.failures if f.worker_id in keep),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "period_start": self.period_start,
            "period_end": self.period_end,
            "adjustments": self.adjustments.batch_dict(),
            "lines": [line.to_dict() for line in self.lines],
            "failures": [f.to_dict() for f in self.failures],
        }

    def fingerprint(self) -> str:
        """SHA-256 over the canonical JSON of the draft."""
        return hash_payload(self.to_dict())


# =============================================================================
# Commit, history, reversal
# =============================================================================


@dataclass(frozen=True)
class CommitResult:
    """
    Outcome of committing a draft.

    snapshot_id is None only when no worker committed.
    """

    snapshot_id: UUID | None
    committed_worker_ids: tuple[UUID, ...]
    rejected: tuple[WorkerFailure, ...] = ()

    @property
    def rejected_worker_ids(self) -> tuple[UUID, ...]:
        return tuple(f.worker_id for f in self.rejected)

    @property
    def is_complete(self) -> bool:
        return not self.rejected


@dataclass(frozen=True)
class SnapshotLine(DraftLine):
    """Frozen line of a committed snapshot, plus the deposit it produced."""

    deposit_entry_id: UUID | None = None

    @classmethod
    def from_model(cls, model: SnapshotLineModel) -> SnapshotLine:
        return cls(
            worker_id=model.worker_id,
            worker_code=model.worker_code,
            hourly_rate=model.hourly_rate,
            days_present=model.days_present,
            days_absent=model.days_absent,
            days_half=model.days_half,
            days_holiday=model.days_holiday,
            hours_worked=model.hours_worked,
            base_amount=model.base_amount,
            penalty_amount=model.penalty_amount,
            advance_deduction=model.advance_deduction,
            extra_amount=model.extra_amount,
            proposed_deposit=model.proposed_deposit,
            advance_balance_at_calc=model.advance_balance_at_calc,
            final_amount=model.final_amount,
            notes=model.notes,
            deposit_entry_id=model.deposit_entry_id,
        )


@dataclass(frozen=True)
class HistorySnapshot:
    """Read view of a committed (or since deleted) settlement."""

    id: UUID
    kind: SettlementKind
    period_start: date
    period_end: date
    saved_at: datetime
    status: SnapshotStatus
    locked: bool
    draft_fingerprint: str
    adjustments: Mapping[str, Any]
    lines: tuple[SnapshotLine, ...]
    deleted_at: datetime | None = None
    deleted_by_id: UUID | None = None
    delete_reason: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.status == SnapshotStatus.DELETED

    @property
    def worker_ids(self) -> tuple[UUID, ...]:
        return tuple(line.worker_id for line in self.lines)

    def totals(self) -> SettlementTotals:
        return SettlementTotals.from_lines(self.lines)

    @classmethod
    def from_model(cls, model: HistorySnapshotModel) -> HistorySnapshot:
        return cls(
            id=model.id,
            kind=SettlementKind(model.kind),
            period_start=model.period_start,
            period_end=model.period_end,
            saved_at=model.saved_at,
            status=SnapshotStatus(model.status),
            locked=model.locked,
            draft_fingerprint=model.draft_fingerprint,
            adjustments=MappingProxyType(dict(model.adjustments or {})),
            lines=tuple(SnapshotLine.from_model(line) for line in model.lines),
            deleted_at=model.deleted_at,
            deleted_by_id=model.deleted_by_id,
            delete_reason=model.delete_reason,
        )


@dataclass(frozen=True)
class ReversalResult:
    """Outcome of deleting a snapshot."""

    snapshot_id: UUID
    affected_worker_ids: tuple[UUID, ...]
    reversal_entry_ids: tuple[UUID, ...]
    released_lock_count: int


@dataclass(frozen=True)
class ReconciliationReport:
    """Maintained balance versus what the ledger rows say."""

    worker_id: UUID
    worker_code: str
    maintained_balance: Decimal
    ledger_sum: Decimal
    last_balance_after: Decimal
    maintained_entry_count: int
    ledger_entry_count: int

    @property
    def is_consistent(self) -> bool:
        return (
            self.maintained_balance == self.ledger_sum == self.last_balance_after
            and self.maintained_entry_count == self.ledger_entry_count
        )
