"""
Concurrent writers against one worker.

Threads are released together with a Barrier so their commits really race
for the worker.  Every scenario must end with exactly one winner and a
ledger whose maintained balance still reconciles.

Run with:
    pytest tests/concurrency/test_settlement_races.py -v
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from payroll_kernel.domain.dtos import SettlementAdjustments, WorkerAdjustment
from payroll_kernel.domain.values import SettlementKind
from payroll_kernel.exceptions import SnapshotAlreadyDeletedError
from tests.conftest import JAN_END, JAN_START

THREADS = 2


def _race(*calls):
    """Run the callables in parallel, released together; return results or exceptions."""
    barrier = Barrier(len(calls))

    def _run(call):
        barrier.wait(timeout=10)
        try:
            return call()
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(_run, call) for call in calls]
        return [f.result(timeout=60) for f in futures]


def _deposit(worker_id, amount):
    return SettlementAdjustments(
        per_worker={worker_id: WorkerAdjustment(proposed_deposit=Decimal(amount))}
    )


class TestCommitRaces:
    def test_two_deposits_cannot_both_spend_the_same_balance(self, service, make_worker):
        worker = make_worker(balance="800")
        salary = service.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker.id], _deposit(worker.id, "600")
        )
        bonus = service.calculate(
            SettlementKind.BONUS, JAN_START, JAN_END, [worker.id], _deposit(worker.id, "600")
        )
        assert not salary.failures and not bonus.failures

        results = _race(lambda: service.commit(salary), lambda: service.commit(bonus))

        committed = [r for r in results if r.committed_worker_ids]
        rejected = [r for r in results if r.rejected]
        assert len(committed) == 1
        assert len(rejected) == 1
        assert rejected[0].rejected[0].code in ("INSUFFICIENT_BALANCE", "CONCURRENT_MODIFICATION")
        assert service.workers.balance(worker.id) == Decimal("200")
        assert all(r.is_consistent for r in service.reconcile_all())

    def test_same_draft_committed_twice_settles_once(self, service, make_worker):
        worker = make_worker(balance="500")
        draft = service.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker.id], _deposit(worker.id, "300")
        )

        results = _race(*[lambda: service.commit(draft) for _ in range(THREADS)])

        assert sorted(len(r.committed_worker_ids) for r in results) == [0, 1]
        loser = next(r for r in results if not r.committed_worker_ids)
        assert loser.rejected[0].code == "PERIOD_ALREADY_LOCKED"
        assert service.workers.balance(worker.id) == Decimal("200")
        assert len(service.ledger(worker.id)) == 2


class TestReversalRaces:
    def test_snapshot_is_reversed_once(self, service, make_worker):
        worker = make_worker(balance="500")
        draft = service.calculate(
            SettlementKind.SALARY, JAN_START, JAN_END, [worker.id], _deposit(worker.id, "500")
        )
        snapshot_id = service.commit(draft).snapshot_id

        results = _race(*[lambda: service.delete_history(snapshot_id) for _ in range(THREADS)])

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], SnapshotAlreadyDeletedError)
        assert service.workers.balance(worker.id) == Decimal("500")
        assert len(service.ledger(worker.id)) == 3


class TestManualEntryRaces:
    @pytest.mark.parametrize("count", [10])
    def test_parallel_advances_all_land(self, service, make_worker, count):
        worker = make_worker()

        results = _race(*[lambda: service.record_advance(worker.id, "10") for _ in range(count)])

        assert not [r for r in results if isinstance(r, Exception)]
        assert service.workers.balance(worker.id) == Decimal("10") * count
        assert sorted(e.seq for e in service.ledger_entries(worker.id)) == list(range(1, count + 1))

    def test_deposits_never_overdraw(self, service, make_worker):
        worker = make_worker(balance="100")

        results = _race(*[lambda: service.record_deposit(worker.id, "60") for _ in range(4)])

        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert service.workers.balance(worker.id) == Decimal("40")
