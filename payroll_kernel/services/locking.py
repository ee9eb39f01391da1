"""
WorkerLockRegistry -- per-worker mutual exclusion inside one process.

Every ledger write for a worker (manual advance/deposit, settlement commit,
snapshot reversal) runs while holding that worker's lock, so the
read-balance / validate / append sequence is never interleaved with another
writer in the same process.  Across processes the optimistic version check
in LedgerStore (and FOR UPDATE on PostgreSQL) does the same job.

Different workers' locks are independent; one worker's commit never blocks
another's.
"""

import threading
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from uuid import UUID


class WorkerLockRegistry:
    """Hands out one re-entrant lock per worker id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.RLock] = {}

    def lock_for(self, worker_id: UUID) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(worker_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[worker_id] = lock
            return lock

    @contextmanager
    def hold(self, worker_id: UUID) -> Iterator[None]:
        """Hold one worker's lock for the duration of the block."""
        with self.lock_for(worker_id):
            yield

    @contextmanager
    def hold_many(self, worker_ids: Iterable[UUID]) -> Iterator[None]:
        """Hold several workers' locks, acquired in sorted id order."""
        with ExitStack() as stack:
            for worker_id in sorted(set(worker_ids), key=str):
                stack.enter_context(self.hold(worker_id))
            yield
