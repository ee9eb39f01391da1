"""AttendanceSource -- the read-only attendance collaborator.

The engine never writes attendance through this interface.  The SQL-backed
implementation lives in selectors/attendance_selector.py; tests supply an
in-memory double.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Protocol, runtime_checkable
from uuid import UUID

from payroll_kernel.domain.dtos import AttendanceRecord
from payroll_kernel.exceptions import AttendanceUnavailableError


@runtime_checkable
class AttendanceSource(Protocol):
    """Protocol for listing daily attendance over an inclusive date range."""

    def list_attendance(
        self,
        worker_id: UUID | None,
        period_start: date,
        period_end: date,
    ) -> Sequence[AttendanceRecord]:
        """Return the records for one worker, or all workers when worker_id is None.

        Raises:
            AttendanceUnavailableError: When the source cannot produce a
                complete answer for the range.
        """
        ...


def checked_attendance(
    records: Sequence[AttendanceRecord],
    worker_id: UUID,
    period_start: date,
    period_end: date,
) -> tuple[AttendanceRecord, ...]:
    """
    Validate what a source returned for one worker and return it date-ordered.

    A source that hands back another worker's rows, days outside the range,
    negative hours, or two rows for the same day has produced data we cannot
    trust.

    Raises:
        AttendanceUnavailableError: On any of the above.
    """
    seen: set[date] = set()
    for record in records:
        if record.worker_id != worker_id:
            raise AttendanceUnavailableError(
                f"record for worker {record.worker_id} in response",
                worker_id=worker_id,
                period_start=period_start,
                period_end=period_end,
            )
        if not period_start <= record.work_date <= period_end:
            raise AttendanceUnavailableError(
                f"record dated {record.work_date} outside requested range",
                worker_id=worker_id,
                period_start=period_start,
                period_end=period_end,
            )
        if record.hours_worked < 0 or record.hourly_rate < 0:
            raise AttendanceUnavailableError(
                f"negative hours or rate on {record.work_date}",
                worker_id=worker_id,
                period_start=period_start,
                period_end=period_end,
            )
        if record.work_date in seen:
            raise AttendanceUnavailableError(
                f"duplicate records for {record.work_date}",
                worker_id=worker_id,
                period_start=period_start,
                period_end=period_end,
            )
        seen.add(record.work_date)
    return tuple(sorted(records, key=lambda r: r.work_date))
