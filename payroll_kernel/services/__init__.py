"""Write-side kernel services."""

from payroll_kernel.services.attendance_recorder import AttendanceRecorder
from payroll_kernel.services.ledger_store import LedgerStore
from payroll_kernel.services.locking import WorkerLockRegistry
from payroll_kernel.services.reversal_service import SnapshotReversalService
from payroll_kernel.services.settlement_committer import SettlementCommitter
from payroll_kernel.services.worker_service import WorkerAccountService

__all__ = [
    "AttendanceRecorder",
    "LedgerStore",
    "SettlementCommitter",
    "SnapshotReversalService",
    "WorkerAccountService",
    "WorkerLockRegistry",
]
