"""
Module: payroll_kernel.models.worker
Responsibility: ORM persistence for worker accounts -- identity, pay rates,
    activity flag, and the maintained running balance.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - worker_code is unique (uq_worker_code).
    - balance, entry_count and version are written ONLY by
      services/ledger_store.py, under an optimistic version check.
    - Workers are never deleted (db/immutability.py); deactivate instead.

Failure modes:
    - IntegrityError on duplicate worker_code (surfaced by the service layer
      as WorkerAlreadyExistsError).
    - ImmutabilityViolationError on DELETE.

Audit relevance:
    balance is a cache of the ledger.  It must always equal the signed sum
    of the worker's LedgerEntry rows and the balance_after of the last one;
    LedgerSelector.reconcile() checks exactly that.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase


class WorkerAccount(TrackedBase):
    """
    A worker and the unit of concurrency control for their ledger.

    Contract:
        Every ledger append for this worker bumps `version` by exactly one
        via compare-and-swap.  A writer that observes a different version
        than it read must re-validate and retry.

    Guarantees:
        - balance == balance_after of the entry with seq == entry_count
          (or 0 when entry_count == 0).
        - hourly_rate changes never alter history: attendance rows and
          snapshot lines carry their own rate copy.

    Non-goals:
        - Does not compute pay; see domain/calculator.py.
    """

    __tablename__ = "worker_accounts"

    __table_args__ = (
        UniqueConstraint("worker_code", name="uq_worker_code"),
        Index("idx_worker_active", "is_active"),
    )

    # Human-facing identifier (e.g. "W-001")
    worker_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    # Current rate; applies to attendance recorded and bonus drafts computed from now on
    hourly_rate: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    daily_working_hours: Mapped[Decimal] = mapped_column(
        Numeric(12, 4),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Running total of signed ledger amounts (advances minus deposits)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    # Sequence number of the latest ledger entry
    entry_count: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
    )

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<WorkerAccount {self.worker_code}: balance={self.balance}>"

    @property
    def half_day_hours(self) -> Decimal:
        """Hours credited for a half-day."""
        return self.daily_working_hours / 2
