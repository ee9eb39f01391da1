"""
Module: payroll_kernel.models.history
Responsibility: ORM persistence for committed settlements -- the snapshot
    header, its frozen per-worker lines, and the period locks that stop a
    period from being settled twice.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - SnapshotLineModel rows are immutable from creation.  They are a copy of
      the draft line, never a reference to live worker data.
    - HistorySnapshotModel.status moves committed -> deleted exactly once;
      nothing else on the header ever changes.
    - At most one active (released_at IS NULL) PeriodLock per
      (worker_id, kind, period_start, period_end) -- uq_period_lock_active.
      This is the database backstop behind PeriodAlreadyLockedError; the
      service layer additionally refuses overlapping periods.

Failure modes:
    - IntegrityError on a second active lock for the same worker/period.
    - ImmutabilityViolationError on forbidden UPDATE/DELETE.

Audit relevance:
    A deleted snapshot stays in the table with deleted_at, deleted_by_id and
    delete_reason filled in, next to the compensating ledger entries that
    reversed it.  History is never destroyed.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.db.types import enum_type
from payroll_kernel.domain.values import SettlementKind, SnapshotStatus


class HistorySnapshotModel(TrackedBase):
    """
    Header of a committed settlement.

    Contract:
        Created by SettlementCommitter when the first worker of a draft
        commits.  Lines are added one worker at a time, each in its own
        transaction together with that worker's deposit entry and lock.

    Guarantees:
        - locked is always True.
        - adjustments is a frozen JSON copy of the batch-level adjustments
          the draft was computed with.
    """

    __tablename__ = "history_snapshots"

    __table_args__ = (
        Index("idx_snapshot_kind_period", "kind", "period_start", "period_end"),
        Index("idx_snapshot_status", "status"),
    )

    kind: Mapped[SettlementKind] = mapped_column(
        enum_type(SettlementKind),
        nullable=False,
    )

    period_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    period_end: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    saved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    status: Mapped[SnapshotStatus] = mapped_column(
        enum_type(SnapshotStatus),
        default=SnapshotStatus.COMMITTED,
        nullable=False,
    )

    locked: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # SHA-256 of the draft this snapshot was committed from
    draft_fingerprint: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    adjustments: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    deleted_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    delete_reason: Mapped[str | None] = mapped_column(
        String(2000),
        nullable=True,
    )

    lines: Mapped[list["SnapshotLineModel"]] = relationship(
        back_populates="snapshot",
        order_by="SnapshotLineModel.worker_code",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<HistorySnapshot {self.kind.value} "
            f"{self.period_start}..{self.period_end}: {self.status.value}>"
        )

    @property
    def is_deleted(self) -> bool:
        return self.status == SnapshotStatus.DELETED


class SnapshotLineModel(TrackedBase):
    """
    Frozen copy of one worker's draft line at commit time.

    Guarantees:
        - deposit_entry_id points at the deposit this line produced, or is
          None when proposed_deposit was zero.
        - One line per worker per snapshot (uq_snapshot_line_worker).
    """

    __tablename__ = "snapshot_lines"

    __table_args__ = (
        UniqueConstraint("snapshot_id", "worker_id", name="uq_snapshot_line_worker"),
        Index("idx_snapshot_line_worker", "worker_id"),
    )

    snapshot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("history_snapshots.id"),
        nullable=False,
    )

    worker_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("worker_accounts.id"),
        nullable=False,
    )

    worker_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Attendance counts over the period
    days_present: Mapped[int] = mapped_column(BigInteger, nullable=False)
    days_absent: Mapped[int] = mapped_column(BigInteger, nullable=False)
    days_half: Mapped[int] = mapped_column(BigInteger, nullable=False)
    days_holiday: Mapped[int] = mapped_column(BigInteger, nullable=False)
    hours_worked: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)

    # Amounts
    base_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    penalty_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    advance_deduction: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    extra_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    proposed_deposit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    advance_balance_at_calc: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    final_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    notes: Mapped[str] = mapped_column(
        String(2000),
        default="",
        nullable=False,
    )

    deposit_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id"),
        nullable=True,
    )

    snapshot: Mapped[HistorySnapshotModel] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<SnapshotLine {self.worker_code}: final={self.final_amount}>"


class PeriodLock(TrackedBase):
    """
    Marks a (worker, kind, period) as settled by a live snapshot.

    Contract:
        Inserted in the same transaction as the worker's snapshot line.
        Released (released_at set, once) when the snapshot is deleted.
        Never deleted.
    """

    __tablename__ = "period_locks"

    __table_args__ = (
        Index(
            "uq_period_lock_active",
            "worker_id",
            "kind",
            "period_start",
            "period_end",
            unique=True,
            sqlite_where=text("released_at IS NULL"),
            postgresql_where=text("released_at IS NULL"),
        ),
        Index("idx_period_lock_worker_kind", "worker_id", "kind"),
        Index("idx_period_lock_snapshot", "snapshot_id"),
    )

    worker_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("worker_accounts.id"),
        nullable=False,
    )

    kind: Mapped[SettlementKind] = mapped_column(
        enum_type(SettlementKind),
        nullable=False,
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    snapshot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("history_snapshots.id"),
        nullable=False,
    )

    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        state = "released" if self.released_at else "active"
        return f"<PeriodLock {self.worker_id} {self.kind.value} {self.period_start}..{self.period_end}: {state}>"
