"""
Module: payroll_kernel.selectors.ledger_selector
Responsibility: Read access to ledger entries for export and reconciliation.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - reconcile() recomputes from LedgerEntry rows only; it never trusts the
      maintained WorkerAccount.balance it is checking.

Audit relevance:
    reconcile_all() is the standing check that the maintained running
    balance equals the signed sum of the ledger and the last balance_after.
    scripts/reconcile_ledger.py runs it from the command line.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.dtos import LedgerEntryInfo, ReconciliationReport
from payroll_kernel.exceptions import WorkerNotFoundError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.ledger import LedgerEntry
from payroll_kernel.models.worker import WorkerAccount
from payroll_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")


class LedgerSelector(BaseSelector):
    """Ledger queries returning DTOs and export rows."""

    def entries(self, worker_id: UUID) -> tuple[LedgerEntryInfo, ...]:
        """A worker's entries in insertion order."""
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.worker_id == worker_id)
            .order_by(LedgerEntry.seq)
        ).scalars().all()
        return tuple(LedgerEntryInfo.from_model(e) for e in rows)

    def entries_for_snapshot(self, snapshot_id: UUID) -> tuple[LedgerEntryInfo, ...]:
        """Every entry a snapshot produced, reversals included."""
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.source_commit_id == snapshot_id)
            .order_by(LedgerEntry.worker_id, LedgerEntry.seq)
        ).scalars().all()
        return tuple(LedgerEntryInfo.from_model(e) for e in rows)

    def ledger_rows(self, worker_id: UUID) -> list[dict[str, Any]]:
        """Export projection: date, kind, amount, balance_after, notes."""
        if self.session.get(WorkerAccount, worker_id) is None:
            raise WorkerNotFoundError(worker_id)
        return [entry.to_row() for entry in self.entries(worker_id)]

    def reconcile(self, worker_id: UUID) -> ReconciliationReport:
        worker = self.session.get(WorkerAccount, worker_id)
        if worker is None:
            raise WorkerNotFoundError(worker_id)
        return self._reconcile(worker)

    def reconcile_all(self) -> tuple[ReconciliationReport, ...]:
        workers = self.session.execute(
            select(WorkerAccount).order_by(WorkerAccount.worker_code)
        ).scalars().all()
        reports = tuple(self._reconcile(w) for w in workers)
        mismatches = [r for r in reports if not r.is_consistent]
        logger.info(
            "ledger_reconciled",
            extra={"worker_count": len(reports), "mismatch_count": len(mismatches)},
        )
        return reports

    def _reconcile(self, worker: WorkerAccount) -> ReconciliationReport:
        entries = self.entries(worker.id)
        ledger_sum = sum((e.signed_amount for e in entries), Decimal("0"))
        last_balance_after = entries[-1].balance_after if entries else Decimal("0")
        report = ReconciliationReport(
            worker_id=worker.id,
            worker_code=worker.worker_code,
            maintained_balance=worker.balance,
            ledger_sum=ledger_sum,
            last_balance_after=last_balance_after,
            maintained_entry_count=worker.entry_count,
            ledger_entry_count=len(entries),
        )
        if not report.is_consistent:
            logger.error(
                "ledger_reconciliation_mismatch",
                extra={
                    "worker_id": str(worker.id),
                    "maintained_balance": str(worker.balance),
                    "ledger_sum": str(ledger_sum),
                    "last_balance_after": str(last_balance_after),
                },
            )
        return report
