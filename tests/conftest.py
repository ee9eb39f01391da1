"""
Pytest fixtures for the payroll kernel test suite.

Provides:
- A file-based SQLite database per test (tables created fresh)
- A session factory and the kernel services wired around one lock registry
- A DeterministicClock
- Structured log capture
- A StaticAttendanceSource test double and worker factories
"""

import json
import logging
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from payroll_kernel.db.engine import build_engine, create_tables
from payroll_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.dtos import AttendanceRecord
from payroll_kernel.domain.values import AttendanceStatus
from payroll_kernel.exceptions import AttendanceUnavailableError
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.services.locking import WorkerLockRegistry
from payroll_kernel.services.reversal_service import SnapshotReversalService
from payroll_kernel.services.settlement_committer import SettlementCommitter
from payroll_kernel.services.worker_service import WorkerAccountService
from payroll_services import SettlementService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

JAN_START = date(2024, 1, 1)
JAN_END = date(2024, 1, 31)
FEB_START = date(2024, 2, 1)
FEB_END = date(2024, 2, 29)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workers):
            workers.record_advance(worker_id, "100")
            logs = captured_logs()
            assert any(r["message"] == "ledger_entry_appended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def engine(tmp_path):
    """A fresh file-based SQLite database with all tables created."""
    eng = build_engine(f"sqlite:///{tmp_path / 'payroll_test.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A plain session for flush-only services and direct model access."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def locks():
    return WorkerLockRegistry()


@pytest.fixture
def workers(session_factory, locks, deterministic_clock):
    return WorkerAccountService(session_factory, locks=locks, clock=deterministic_clock)


@pytest.fixture
def committer(session_factory, locks, deterministic_clock):
    return SettlementCommitter(session_factory, locks=locks, clock=deterministic_clock)


@pytest.fixture
def reversals(session_factory, locks, deterministic_clock):
    return SnapshotReversalService(session_factory, locks=locks, clock=deterministic_clock)


@pytest.fixture
def service(session_factory, deterministic_clock):
    """The facade, reading attendance from the attendance_records table."""
    return SettlementService(session_factory, clock=deterministic_clock)


# =============================================================================
# Worker factories
# =============================================================================


@pytest.fixture
def make_worker(workers, test_actor_id):
    """
    Onboard a worker, optionally with an opening balance (as an advance).

    Returns the WorkerInfo as of after the opening advance.
    """
    counter = iter(range(1, 10_000))

    def _make(
        worker_code: str | None = None,
        hourly_rate: str = "50",
        daily_working_hours: str = "8",
        balance: str | None = None,
    ):
        code = worker_code or f"W-{next(counter):03d}"
        info = workers.onboard(code, f"Worker {code}", hourly_rate, daily_working_hours, test_actor_id)
        if balance is not None and Decimal(balance) > 0:
            workers.record_advance(info.id, balance, notes="opening advance", actor_id=test_actor_id)
            info = workers.get_worker(info.id)
        return info

    return _make


# =============================================================================
# Attendance test double
# =============================================================================


class StaticAttendanceSource:
    """
    In-memory AttendanceSource.

    Records are filtered by worker and date range on every call.  Workers
    listed in fail_for make the source raise AttendanceUnavailableError.
    """

    def __init__(self, records: Iterable[AttendanceRecord] = (), fail_for: Iterable[UUID] = ()):
        self.records = list(records)
        self.fail_for = set(fail_for)
        self.calls: list[tuple[UUID | None, date, date]] = []

    def add_days(
        self,
        worker_id: UUID,
        start: date,
        count: int,
        status: AttendanceStatus = AttendanceStatus.PRESENT,
        hours: str = "8",
        rate: str = "50",
    ) -> None:
        for offset in range(count):
            self.records.append(
                AttendanceRecord(
                    worker_id=worker_id,
                    work_date=start + timedelta(days=offset),
                    status=status,
                    hours_worked=Decimal("0") if status == AttendanceStatus.ABSENT else Decimal(hours),
                    hourly_rate=Decimal(rate),
                )
            )

    def list_attendance(self, worker_id, period_start, period_end):
        self.calls.append((worker_id, period_start, period_end))
        if worker_id in self.fail_for:
            raise AttendanceUnavailableError("source offline", worker_id=worker_id)
        return [
            r
            for r in self.records
            if (worker_id is None or r.worker_id == worker_id)
            and period_start <= r.work_date <= period_end
        ]


@pytest.fixture
def attendance():
    return StaticAttendanceSource()
