"""
AttendanceRecorder -- writes the daily attendance rows read by
SqlAttendanceSource.

Responsibility:
    Records one day of attendance for one worker, capturing the worker's
    hourly rate at recording time so that later rate changes never re-price
    that day.

Architecture position:
    Kernel > Services -- flush-only; the caller owns the transaction.

Invariants enforced:
    - One record per worker per day; re-recording replaces the row.
    - Credited hours follow the status: present/holiday default to the
      worker's daily working hours, half-day is forced to half of that,
      absent is forced to zero.
    - A day covered by a live (unreleased) period lock cannot be changed:
      the committed snapshot was computed from it.

Failure modes:
    - WorkerNotFoundError, WorkerInactiveError.
    - InvalidAmountError on negative or non-numeric hours.
    - PeriodAlreadyLockedError when a live snapshot covers the day.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.db.base import SYSTEM_ACTOR_ID
from payroll_kernel.db.types import non_negative_money
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import AttendanceRecord
from payroll_kernel.domain.values import AttendanceStatus
from payroll_kernel.exceptions import (
    PeriodAlreadyLockedError,
    WorkerInactiveError,
    WorkerNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.attendance import AttendanceRecordModel
from payroll_kernel.models.history import PeriodLock
from payroll_kernel.models.worker import WorkerAccount
from payroll_kernel.services.base import BaseService

logger = get_logger("services.attendance_recorder")


class AttendanceRecorder(BaseService):
    """Records daily attendance."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        worker_id: UUID,
        work_date: date,
        status: AttendanceStatus | str,
        hours_worked: Decimal | int | str | None = None,
        notes: str = "",
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> AttendanceRecord:
        """
        Record (or replace) one worker's attendance for one day.

        hours_worked is only honoured for present and holiday days; it
        defaults to the worker's daily working hours.
        """
        status = AttendanceStatus(status)
        worker = self.session.get(WorkerAccount, worker_id)
        if worker is None:
            raise WorkerNotFoundError(worker_id)
        if not worker.is_active:
            raise WorkerInactiveError(worker_id, work_date, work_date)

        lock = self.session.execute(
            select(PeriodLock)
            .where(PeriodLock.worker_id == worker_id)
            .where(PeriodLock.released_at.is_(None))
            .where(PeriodLock.period_start <= work_date)
            .where(PeriodLock.period_end >= work_date)
            .limit(1)
        ).scalar_one_or_none()
        if lock is not None:
            raise PeriodAlreadyLockedError(
                worker_id,
                lock.kind.value,
                lock.period_start,
                lock.period_end,
                snapshot_id=lock.snapshot_id,
            )

        hours = self._credited_hours(worker, status, hours_worked)

        row = self.session.execute(
            select(AttendanceRecordModel)
            .where(AttendanceRecordModel.worker_id == worker_id)
            .where(AttendanceRecordModel.work_date == work_date)
        ).scalar_one_or_none()

        replaced = row is not None
        if row is None:
            row = AttendanceRecordModel(
                worker_id=worker_id,
                work_date=work_date,
                created_by_id=actor_id,
            )
            self.session.add(row)
        else:
            row.updated_by_id = actor_id

        row.status = status
        row.hours_worked = hours
        row.hourly_rate = worker.hourly_rate
        row.notes = notes
        self.session.flush()

        logger.info(
            "attendance_recorded",
            extra={
                "worker_id": str(worker_id),
                "work_date": str(work_date),
                "status": status.value,
                "hours_worked": str(hours),
                "hourly_rate": str(worker.hourly_rate),
                "replaced": replaced,
            },
        )
        return AttendanceRecord.from_model(row)

    @staticmethod
    def _credited_hours(
        worker: WorkerAccount,
        status: AttendanceStatus,
        hours_worked,
    ) -> Decimal:
        if status == AttendanceStatus.ABSENT:
            return Decimal("0")
        if status == AttendanceStatus.HALF_DAY:
            return worker.daily_working_hours / 2
        if hours_worked is None:
            return worker.daily_working_hours
        return non_negative_money(hours_worked, field="hours_worked")
