"""
SqlAttendanceSource -- AttendanceSource backed by the attendance_records table.

Read-only.  Wraps database failures in AttendanceUnavailableError so that a
broken read is reported as a calculation failure, never as zero hours.
"""

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from payroll_kernel.domain.dtos import AttendanceRecord
from payroll_kernel.exceptions import AttendanceUnavailableError
from payroll_kernel.models.attendance import AttendanceRecordModel
from payroll_kernel.selectors.base import BaseSelector


class SqlAttendanceSource(BaseSelector):
    """Lists attendance rows for one worker or for everyone."""

    def list_attendance(
        self,
        worker_id: UUID | None,
        period_start: date,
        period_end: date,
    ) -> Sequence[AttendanceRecord]:
        query = (
            select(AttendanceRecordModel)
            .where(AttendanceRecordModel.work_date >= period_start)
            .where(AttendanceRecordModel.work_date <= period_end)
            .order_by(AttendanceRecordModel.worker_id, AttendanceRecordModel.work_date)
        )
        if worker_id is not None:
            query = query.where(AttendanceRecordModel.worker_id == worker_id)

        try:
            rows = self.session.execute(query).scalars().all()
        except SQLAlchemyError as exc:
            raise AttendanceUnavailableError(
                f"attendance query failed: {exc}",
                worker_id=worker_id,
                period_start=period_start,
                period_end=period_end,
            ) from exc
        return tuple(AttendanceRecord.from_model(row) for row in rows)
