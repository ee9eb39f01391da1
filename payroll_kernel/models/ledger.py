"""
Module: payroll_kernel.models.ledger
Responsibility: ORM persistence for the append-only per-worker money ledger.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - (worker_id, seq) is unique: one insertion order per worker.
    - amount > 0; the sign comes from kind.
    - balance_after[i] = balance_after[i-1] + amount[i] for advances and
      balance_after[i-1] - amount[i] for deposits.
    - Rows are never updated or deleted (db/immutability.py).
    - A given entry is reversed at most once (uq_ledger_reversal_of).

Failure modes:
    - IntegrityError on duplicate (worker_id, seq): a concurrent writer won
      the race; the service maps this to ConcurrentModificationError.
    - ImmutabilityViolationError on UPDATE/DELETE.

Audit relevance:
    Settlement deposits carry source_commit_id; the compensating advances
    written when a snapshot is deleted carry both source_commit_id and
    reversal_of_id, so the trail from snapshot to money is complete.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, Date, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.db.types import enum_type
from payroll_kernel.domain.values import EntryKind


class LedgerEntry(TrackedBase):
    """
    One advance or deposit against a worker's balance.

    Contract:
        Written only by LedgerStore.append().  Immutable from creation.

    Guarantees:
        - seq is dense per worker, starting at 1.
        - balance_after is the worker's balance immediately after this entry.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("worker_id", "seq", name="uq_ledger_worker_seq"),
        UniqueConstraint("reversal_of_id", name="uq_ledger_reversal_of"),
        CheckConstraint("amount > 0", name="ck_ledger_amount_positive"),
        Index("idx_ledger_source_commit", "source_commit_id"),
        Index("idx_ledger_worker_date", "worker_id", "entry_date"),
    )

    worker_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("worker_accounts.id"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    kind: Mapped[EntryKind] = mapped_column(
        enum_type(EntryKind),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    notes: Mapped[str] = mapped_column(
        String(2000),
        default="",
        nullable=False,
    )

    balance_after: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    # Snapshot that produced this entry (None for manual entries)
    source_commit_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("history_snapshots.id"),
        nullable=True,
    )

    # Entry this one compensates (set only by snapshot deletion)
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.worker_id}#{self.seq}: {self.kind.value} {self.amount}>"

    @property
    def signed_amount(self) -> Decimal:
        """amount with the sign implied by kind."""
        return self.amount * self.kind.sign
