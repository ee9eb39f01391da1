"""Read-only query selectors."""

from payroll_kernel.selectors.attendance_selector import SqlAttendanceSource
from payroll_kernel.selectors.history_selector import HistorySelector
from payroll_kernel.selectors.ledger_selector import LedgerSelector

__all__ = [
    "HistorySelector",
    "LedgerSelector",
    "SqlAttendanceSource",
]
