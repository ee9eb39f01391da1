"""
SnapshotReversalService tests.

Tests cover:
- Reversal symmetry: balances return to their pre-commit values
- Ledger growth: originals plus exactly one compensating entry each
- Linkage: reversal_of_id and source_commit_id on compensating entries
- Lock release and recommit after deletion
- Error paths: unknown snapshot, double deletion
- Deletion metadata on the snapshot header
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.db.engine import session_scope
from payroll_kernel.domain.calculator import SettlementCalculator
from payroll_kernel.domain.dtos import SettlementAdjustments, WorkerAdjustment
from payroll_kernel.domain.values import EntryKind, PeriodState, SettlementKind, SnapshotStatus
from payroll_kernel.exceptions import SnapshotAlreadyDeletedError, SnapshotNotFoundError
from payroll_kernel.selectors.history_selector import HistorySelector
from payroll_kernel.selectors.ledger_selector import LedgerSelector
from tests.conftest import JAN_END, JAN_START


@pytest.fixture
def committed(workers, attendance, committer, make_worker):
    """Two workers with advances, settled with deposits of 600 and 150."""
    a = make_worker("W-001", balance="800")
    b = make_worker("W-002", balance="150")
    adjustments = SettlementAdjustments(
        per_worker={
            a.id: WorkerAdjustment(proposed_deposit=Decimal("600")),
            b.id: WorkerAdjustment(proposed_deposit=Decimal("150")),
        }
    )
    infos, failures = workers.resolve_workers([a.id, b.id], JAN_START, JAN_END)
    draft = SettlementCalculator().calculate(
        SettlementKind.SALARY, JAN_START, JAN_END, infos, attendance, adjustments, failures
    )
    result = committer.commit(draft)
    assert result.is_complete
    return a, b, draft, result


class TestReversal:
    def test_balances_return_to_pre_commit_values(self, committed, reversals, workers):
        a, b, _, result = committed
        assert workers.balance(a.id) == Decimal("200")
        assert workers.balance(b.id) == Decimal("0")

        reversal = reversals.delete_snapshot(result.snapshot_id, reason="wrong hours")

        assert workers.balance(a.id) == Decimal("800")
        assert workers.balance(b.id) == Decimal("150")
        assert set(reversal.affected_worker_ids) == {a.id, b.id}
        assert len(reversal.reversal_entry_ids) == 2
        assert reversal.released_lock_count == 2

    def test_ledger_only_grows(self, committed, reversals, workers):
        a, _, _, result = committed
        before = workers.history(a.id)

        reversals.delete_snapshot(result.snapshot_id)

        after = workers.history(a.id)
        assert len(after) == len(before) + 1
        assert after[: len(before)] == before

    def test_compensating_entry_links_back(self, committed, reversals, workers, session_factory):
        a, _, _, result = committed
        reversals.delete_snapshot(result.snapshot_id)

        history = workers.history(a.id)
        deposit, reversal = history[-2], history[-1]
        assert deposit.kind == EntryKind.DEPOSIT
        assert reversal.kind == EntryKind.ADVANCE
        assert reversal.amount == deposit.amount
        assert reversal.reversal_of_id == deposit.id
        assert reversal.source_commit_id == result.snapshot_id
        assert reversal.notes == f"reversal of deposit #{deposit.seq}"

        with session_scope(session_factory) as session:
            produced = LedgerSelector(session).entries_for_snapshot(result.snapshot_id)
        assert len(produced) == 4

    def test_manual_entries_are_untouched(self, committed, reversals, workers):
        a, _, _, result = committed
        workers.record_advance(a.id, "50")

        reversals.delete_snapshot(result.snapshot_id)

        assert workers.balance(a.id) == Decimal("850")

    def test_period_can_be_recommitted(self, committed, reversals, committer, session_factory):
        a, _, draft, result = committed
        reversals.delete_snapshot(result.snapshot_id)

        with session_scope(session_factory) as session:
            assert HistorySelector(session).period_state(
                a.id, SettlementKind.SALARY, JAN_START, JAN_END
            ) == PeriodState.DELETED

        again = committer.commit(draft)
        assert again.is_complete
        assert again.snapshot_id != result.snapshot_id

    def test_deletion_metadata(self, committed, reversals, session_factory, test_actor_id, captured_logs):
        _, _, _, result = committed
        reversals.delete_snapshot(result.snapshot_id, actor_id=test_actor_id, reason="duplicate")

        with session_scope(session_factory) as session:
            snapshot = HistorySelector(session).get_snapshot(result.snapshot_id)
        assert snapshot.status == SnapshotStatus.DELETED
        assert snapshot.is_deleted
        assert snapshot.deleted_by_id == test_actor_id
        assert snapshot.delete_reason == "duplicate"
        assert snapshot.deleted_at is not None
        assert len(snapshot.lines) == 2

        deleted = [r for r in captured_logs() if r["message"] == "snapshot_deleted"]
        assert deleted[0]["snapshot_id"] == str(result.snapshot_id)
        assert deleted[0]["reversal_entry_count"] == 2

    def test_zero_deposit_snapshot(self, workers, attendance, committer, reversals, make_worker):
        worker = make_worker()
        infos, _ = workers.resolve_workers([worker.id])
        draft = SettlementCalculator().calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, infos, attendance
        )
        result = committer.commit(draft)

        reversal = reversals.delete_snapshot(result.snapshot_id)

        assert reversal.reversal_entry_ids == ()
        assert reversal.released_lock_count == 1
        assert workers.history(worker.id) == ()


class TestErrors:
    def test_unknown_snapshot(self, reversals):
        with pytest.raises(SnapshotNotFoundError):
            reversals.delete_snapshot(uuid4())

    def test_second_delete_is_refused(self, committed, reversals, workers):
        a, _, _, result = committed
        reversals.delete_snapshot(result.snapshot_id)
        length = len(workers.history(a.id))

        with pytest.raises(SnapshotAlreadyDeletedError):
            reversals.delete_snapshot(result.snapshot_id)

        assert len(workers.history(a.id)) == length
        assert workers.balance(a.id) == Decimal("800")
