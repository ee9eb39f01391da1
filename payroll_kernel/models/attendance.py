"""
Module: payroll_kernel.models.attendance
Responsibility: ORM storage for daily attendance, the backing table of the
    SQL AttendanceSource adapter.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - One record per worker per day (uq_attendance_worker_day).
    - hourly_rate is the rate in effect on the day it was recorded, so later
      rate changes never re-price history.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.db.types import enum_type
from payroll_kernel.domain.values import AttendanceStatus


class AttendanceRecordModel(TrackedBase):
    """One day of attendance for one worker."""

    __tablename__ = "attendance_records"

    __table_args__ = (
        UniqueConstraint("worker_id", "work_date", name="uq_attendance_worker_day"),
        Index("idx_attendance_date", "work_date"),
    )

    worker_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("worker_accounts.id"),
        nullable=False,
    )

    work_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    status: Mapped[AttendanceStatus] = mapped_column(
        enum_type(AttendanceStatus),
        nullable=False,
    )

    hours_worked: Mapped[Decimal] = mapped_column(
        Numeric(12, 4),
        nullable=False,
    )

    hourly_rate: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    notes: Mapped[str] = mapped_column(
        String(2000),
        default="",
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.worker_id} {self.work_date}: {self.status.value}>"
