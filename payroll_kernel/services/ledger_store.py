"""
LedgerStore -- the append-only per-worker money ledger.

Responsibility:
    Appends advance/deposit entries, maintains each worker's running balance
    incrementally, and serves balance and ordered history reads.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  The caller owns the
    transaction.  This is the ONLY code that writes LedgerEntry rows or
    WorkerAccount.balance / entry_count / version.

Invariants enforced:
    - amount > 0; non-finite or non-numeric amounts never reach the database.
    - A deposit never drives the balance below zero.
    - balance_after[i] = balance_after[i-1] +/- amount[i]; the worker row's
      balance always equals the last balance_after.
    - seq is dense per worker: entry_count + 1.
    - The worker row is updated by compare-and-swap on `version`, so two
      writers that read the same balance cannot both succeed.

Failure modes:
    - InvalidAmountError: amount <= 0 or not a finite number.
    - InsufficientBalanceError: deposit larger than the current balance.
    - WorkerNotFoundError: unknown worker id.
    - ConcurrentModificationError: the version moved between read and write
      (or another writer took the same seq).  Retryable: the caller should
      roll back and try again in a fresh transaction.

Audit relevance:
    Every append is logged as ``ledger_entry_appended`` with the signed
    amount, the balance after, and the producing snapshot if any.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payroll_kernel.db.base import SYSTEM_ACTOR_ID
from payroll_kernel.db.types import positive_money
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import LedgerEntryInfo
from payroll_kernel.domain.values import EntryKind
from payroll_kernel.exceptions import (
    ConcurrentModificationError,
    InsufficientBalanceError,
    InvalidAmountError,
    WorkerNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.ledger import LedgerEntry
from payroll_kernel.models.worker import WorkerAccount
from payroll_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")


class LedgerStore(BaseService):
    """
    Append-only ledger with an O(1) maintained balance.

    Contract:
        append() validates, writes one LedgerEntry, and advances the worker
        row's balance/entry_count/version in the caller's transaction.

    Guarantees:
        - balance_of() reads one row; it never scans the ledger.
        - history_of() returns entries in insertion (seq) order and can be
          called any number of times.

    Non-goals:
        - Does NOT serialize writers in-process; WorkerLockRegistry does.
        - Does NOT commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def append(
        self,
        worker_id: UUID,
        kind: EntryKind | str,
        amount: Decimal | int | str,
        notes: str = "",
        entry_date: date | None = None,
        *,
        source_commit_id: UUID | None = None,
        reversal_of_id: UUID | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> LedgerEntryInfo:
        """
        Append one entry and advance the running balance.

        Preconditions:
            - Caller holds the worker's lock (WorkerLockRegistry) and an
              open transaction.

        Postconditions:
            - One new LedgerEntry with seq = previous entry_count + 1.
            - Worker balance/entry_count updated, version bumped by one.

        Raises:
            InvalidAmountError, InsufficientBalanceError,
            WorkerNotFoundError, ConcurrentModificationError.
        """
        kind = EntryKind(kind)
        try:
            amount = positive_money(amount)
        except InvalidAmountError as exc:
            raise InvalidAmountError(amount, field="amount", worker_id=worker_id) from exc

        worker = self._load_for_update(worker_id)
        expected_version = worker.version
        balance = worker.balance

        if kind == EntryKind.DEPOSIT and amount > balance:
            logger.warning(
                "ledger_append_rejected",
                extra={
                    "worker_id": str(worker_id),
                    "kind": kind.value,
                    "amount": str(amount),
                    "balance": str(balance),
                    "error_code": InsufficientBalanceError.code,
                },
            )
            raise InsufficientBalanceError(worker_id, amount, balance)

        new_balance = balance + amount * kind.sign
        seq = worker.entry_count + 1

        # INVARIANT: version compare-and-swap; a stale reader updates 0 rows
        result = self.session.execute(
            update(WorkerAccount)
            .where(WorkerAccount.id == worker_id)
            .where(WorkerAccount.version == expected_version)
            .values(
                balance=new_balance,
                entry_count=seq,
                version=expected_version + 1,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "ledger_version_conflict",
                extra={
                    "worker_id": str(worker_id),
                    "expected_version": expected_version,
                },
            )
            raise ConcurrentModificationError(worker_id, expected_version)
        self.session.expire(worker)

        entry = LedgerEntry(
            id=uuid4(),
            worker_id=worker_id,
            seq=seq,
            kind=kind,
            amount=amount,
            entry_date=entry_date or self._clock.today(),
            notes=notes,
            balance_after=new_balance,
            source_commit_id=source_commit_id,
            reversal_of_id=reversal_of_id,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConcurrentModificationError(worker_id, expected_version) from exc

        logger.info(
            "ledger_entry_appended",
            extra={
                "worker_id": str(worker_id),
                "entry_id": str(entry.id),
                "seq": seq,
                "kind": kind.value,
                "amount": str(amount),
                "balance_after": str(new_balance),
                "source_commit_id": str(source_commit_id) if source_commit_id else None,
                "reversal_of_id": str(reversal_of_id) if reversal_of_id else None,
            },
        )
        return LedgerEntryInfo.from_model(entry)

    def balance_of(self, worker_id: UUID) -> Decimal:
        """Current balance from the maintained running total."""
        balance = self.session.execute(
            select(WorkerAccount.balance).where(WorkerAccount.id == worker_id)
        ).scalar_one_or_none()
        if balance is None:
            raise WorkerNotFoundError(worker_id)
        return balance

    def history_of(self, worker_id: UUID) -> Sequence[LedgerEntryInfo]:
        """All of a worker's entries in insertion order."""
        if self.session.get(WorkerAccount, worker_id) is None:
            raise WorkerNotFoundError(worker_id)
        entries = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.worker_id == worker_id)
            .order_by(LedgerEntry.seq)
        ).scalars().all()
        return tuple(LedgerEntryInfo.from_model(e) for e in entries)

    def _load_for_update(self, worker_id: UUID) -> WorkerAccount:
        worker = self.session.execute(
            select(WorkerAccount)
            .where(WorkerAccount.id == worker_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if worker is None:
            raise WorkerNotFoundError(worker_id)
        return worker
