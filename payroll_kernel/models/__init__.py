"""ORM models for the payroll kernel."""

from payroll_kernel.models.attendance import AttendanceRecordModel
from payroll_kernel.models.history import (
    HistorySnapshotModel,
    PeriodLock,
    SnapshotLineModel,
)
from payroll_kernel.models.ledger import LedgerEntry
from payroll_kernel.models.worker import WorkerAccount

__all__ = [
    "WorkerAccount",
    "LedgerEntry",
    "AttendanceRecordModel",
    "HistorySnapshotModel",
    "SnapshotLineModel",
    "PeriodLock",
]
